"""Plugin commands: ADD, DEL, CHECK, GC and VERSION, plus argument and input parsing."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, TextIO

from meshcni.cni_response import (
    CniError,
    EmptyResponse,
    ErrorKind,
    Response,
    Success,
    VersionResponse,
)
from meshcni.cni_types import (
    CNI_VERSION,
    SUPPORTED_CNI_VERSIONS,
    Args,
    Command,
    Input,
    parse_command,
    parse_key_value,
)

logger = logging.getLogger(__name__)

MESH_CNI_SOCKET = "unix:///var/run/mesh/mesh.sock"

_REPLY_KEYS = ("interfaces", "ips", "routes", "dns")


@dataclass
class PodRequest:
    """A request to the agent to attach to or detach from a pod's interface."""

    iface: str
    container_id: str
    net_namespace: str | None = None
    chained: bool = False


class AgentClient(ABC):
    """Talks to the node agent over its local socket."""

    @abstractmethod
    def add_pod(self, request: PodRequest) -> Mapping[str, Any]:
        """Attach to the pod; returns a reply with interfaces, ips, routes and dns."""

    @abstractmethod
    def delete_pod(self, request: PodRequest) -> Mapping[str, Any]:
        """Detach from the pod; returns the agent's reply."""


def _success_from_reply(reply: Mapping[str, Any]) -> Success:
    data: dict[str, Any] = {"cniVersion": str(CNI_VERSION)}
    for key in _REPLY_KEYS:
        if reply.get(key) is not None:
            data[key] = reply[key]
    return Success.from_dict(data)


def _previous_success(previous: Any) -> Success:
    try:
        return Success.from_dict(previous)
    except (ValueError, TypeError) as exc:
        logger.error("failed to deserialize previous results: %s", exc)
        raise CniError(ErrorKind.JSON, str(exc)) from exc


def _send_chained(args: Args, prev: Success, send) -> None:
    if not prev.interfaces:
        logger.error("previous response is missing interfaces")
        raise CniError(ErrorKind.MISSING_INTERFACES)
    for interface in prev.interfaces:
        if interface.sandbox is not None:
            continue
        request = PodRequest(
            iface=interface.name,
            container_id=args.container_id,
            net_namespace=None,
            chained=True,
        )
        try:
            reply = send(request)
        except Exception as exc:
            logger.error("failed request to mesh socket: %s", exc)
            raise CniError(ErrorKind.EBPF, str(exc)) from exc
        logger.info("received reply %r", reply)


def _chained_result(prev: Success) -> Success:
    return Success(
        cni_version=prev.cni_version,
        interfaces=prev.interfaces,
        ips=prev.ips,
        routes=prev.routes,
        dns=prev.dns,
        custom=prev.custom,
    )


def add(args: Args, cni_input: Input, agent: AgentClient) -> Response:
    """Attach the pod's interfaces to the mesh, chained or as the primary plugin."""
    logger.info(
        "add called, received input %r for containerid %s", cni_input, args.container_id
    )
    try:
        if cni_input.previous_result is None:
            result = _add_unchained(args, agent)
        else:
            prev = _previous_success(cni_input.previous_result)
            _send_chained(args, prev, agent.add_pod)
            result = _chained_result(prev)
    except CniError as exc:
        return exc.into_response(CNI_VERSION)
    logger.info("add response %r", result)
    return result


def _add_unchained(args: Args, agent: AgentClient) -> Success:
    if args.net_ns is None:
        raise CniError(
            ErrorKind.INVALID_REQUIRED_ENV_VARIABLES,
            "network namespace is required when not chained",
        )
    request = PodRequest(
        iface=args.ifname,
        container_id=args.container_id,
        net_namespace=str(args.net_ns),
        chained=False,
    )
    try:
        reply = agent.add_pod(request)
        logger.info("received reply %r", reply)
        return _success_from_reply(reply)
    except Exception as exc:
        logger.error("failed request to mesh socket: %s", exc)
        raise CniError(ErrorKind.EBPF, str(exc)) from exc


def delete(args: Args, cni_input: Input, agent: AgentClient) -> Response:
    """Detach the pod's interfaces; only the chained mode is supported."""
    logger.info("delete called, received input %r", cni_input)
    try:
        if cni_input.previous_result is None:
            raise CniError(ErrorKind.NO_PREVIOUS_RESULT, "no previous result found")
        prev = _previous_success(cni_input.previous_result)
        _send_chained(args, prev, agent.delete_pod)
    except CniError as exc:
        return exc.into_response(CNI_VERSION)
    return _chained_result(prev)


def check(args: Args, cni_input: Input) -> Response:
    """CHECK always succeeds with an empty result."""
    logger.info("check called, received input %r", cni_input)
    return EmptyResponse.CHECK


def gc(args: Args, cni_input: Input) -> Response:
    """GC always succeeds with an empty result."""
    logger.info("gc called, received input %r", cni_input)
    return EmptyResponse.GC


def version(args: Args, cni_input: Input) -> Response:
    """Report the plugin's CNI version and the versions it supports."""
    logger.info("version called, received input %r", cni_input)
    return VersionResponse(
        cni_version=CNI_VERSION, supported_versions=list(SUPPORTED_CNI_VERSIONS)
    )


_ARG_SPECS = (
    ("command", "CNI_COMMAND", True, "Possible values are ADD, DEL, CHECK, GC, VERSION"),
    ("container_id", "CNI_CONTAINERID", True, "Container ID"),
    ("net_ns", "CNI_NETNS", False, "Path to the network namespace"),
    ("ifname", "CNI_IFNAME", True, "Interface name"),
    ("args", "CNI_ARGS", True, "Key-value pairs separated by semicolons"),
    ("paths", "CNI_PATH", True, "List of paths to search"),
)


def parse_args(
    argv: Sequence[str] | None = None, env: Mapping[str, str] | None = None
) -> Args:
    """Read the plugin arguments from the command line, falling back to the environment.

    Raises ValueError when a required value is missing or the command is unsupported.
    """
    env = os.environ if env is None else env
    parser = argparse.ArgumentParser(prog="mesh-cni-plugin")
    for dest, var, _required, help_text in _ARG_SPECS:
        parser.add_argument(
            "--" + dest.replace("_", "-"), dest=dest, help=f"{help_text} [env: {var}]"
        )
    namespace = parser.parse_args(argv)

    values: dict[str, str | None] = {}
    for dest, var, required, _help in _ARG_SPECS:
        value = getattr(namespace, dest)
        if value is None:
            value = env.get(var)
        if value is None and required:
            flag = "--" + dest.replace("_", "-")
            raise ValueError(f"missing required argument {flag} (or {var})")
        values[dest] = value

    return Args(
        command=parse_command(values["command"]),
        container_id=values["container_id"],
        ifname=values["ifname"],
        paths=values["paths"],
        net_ns=values["net_ns"],
        args=parse_key_value(values["args"]),
    )


def read_input(stream: TextIO | None = None) -> Input:
    """Read and parse the runtime's JSON configuration; raises CniError."""
    stream = sys.stdin if stream is None else stream
    try:
        text = stream.read()
    except OSError as exc:
        raise CniError(ErrorKind.IO, str(exc)) from exc
    try:
        return Input.from_dict(json.loads(text))
    except (ValueError, TypeError) as exc:
        raise CniError(ErrorKind.JSON, str(exc)) from exc


def _dispatch(args: Args, agent: AgentClient, stream: TextIO | None = None) -> Response:
    if args.command is Command.STATUS:
        return EmptyResponse.STATUS
    try:
        cni_input = read_input(stream)
    except CniError as exc:
        return exc.into_response(CNI_VERSION)
    if args.command is Command.ADD:
        return add(args, cni_input, agent)
    if args.command is Command.DELETE:
        return delete(args, cni_input, agent)
    if args.command is Command.CHECK:
        return check(args, cni_input)
    if args.command is Command.GC:
        return gc(args, cni_input)
    return version(args, cni_input)