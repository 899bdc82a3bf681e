import io
import json

import pytest

from meshcni.cni_response import (
    CniError,
    EmptyResponse,
    ErrorKind,
    Success,
    VersionResponse,
    write_out,
)
from meshcni.cni_types import CNI_VERSION, SUPPORTED_CNI_VERSIONS


@pytest.mark.parametrize(
    "kind, code, msg",
    [
        (ErrorKind.INCOMPATIBLE_VERSION, 1, "Incompatible Version"),
        (ErrorKind.UNSUPPORTED_FIELD, 2, "Incompatible Version"),
        (ErrorKind.CONTAINER_UNKNOWN, 3, "Incompatible Version"),
        (ErrorKind.INVALID_REQUIRED_ENV_VARIABLES, 4, "Invalid Required Environment Variables"),
        (ErrorKind.IO, 5, "I/O Error"),
        (ErrorKind.JSON, 6, "JSON Error"),
        (ErrorKind.INVALID_NETWORK_CONFIG, 7, "Invalid Network Config"),
        (ErrorKind.TRANSIENT, 11, "Transient Error"),
        (ErrorKind.EBPF, 101, "EBPF Error"),
        (ErrorKind.PARSE, 101, "EBPF Error"),
        (ErrorKind.NO_PREVIOUS_RESULT, 102, "No Previous Result"),
        (ErrorKind.MISSING_INTERFACES, 103, "No Interfaces"),
        (ErrorKind.RPC_STATUS, 104, "Tonic"),
        (ErrorKind.RPC_TRANSPORT, 105, "Tonic Transport"),
    ],
)
def test_error_codes(kind, code, msg):
    response = CniError(kind, "detail").into_response(CNI_VERSION)
    assert response.code == code
    assert response.msg == msg
    assert response.cni_version == CNI_VERSION


def test_error_messages():
    assert str(CniError(ErrorKind.MISSING_INTERFACES)) == (
        "cni must be chained after interfaces are created"
    )
    assert str(CniError(ErrorKind.INCOMPATIBLE_VERSION, "1.0.0")) == "incompatible version 1.0.0"
    assert str(CniError(ErrorKind.EBPF, "map full")) == "map full"
    assert str(CniError(ErrorKind.NO_PREVIOUS_RESULT, "no previous result found")) == (
        "missing previous result: no previous result found"
    )


def test_error_response_details_and_dict():
    error = CniError(ErrorKind.INVALID_REQUIRED_ENV_VARIABLES, "CNI_NETNS missing")
    response = error.into_response(CNI_VERSION)
    assert response.details == "invalid environment variables: CNI_NETNS missing"
    assert response.to_dict() == {
        "cniVersion": "0.4.0",
        "code": 4,
        "msg": "Invalid Required Environment Variables",
        "details": "invalid environment variables: CNI_NETNS missing",
    }


def test_cni_error_carries_kind_and_detail():
    error = CniError(ErrorKind.TRANSIENT, "busy")
    assert error.kind is ErrorKind.TRANSIENT
    assert error.detail == "busy"
    assert str(error) == "transient error: busy"
    with pytest.raises(CniError, match="transient error: busy"):
        raise error


SUCCESS_DATA = {
    "cniVersion": "0.4.0",
    "interfaces": [{"name": "eth0", "sandbox": "/var/run/netns/a"}],
    "ips": [{"address": "10.0.0.5/24", "gateway": "10.0.0.1", "interface": 0}],
    "routes": [{"dst": "0.0.0.0/0"}],
    "dns": {"nameservers": ["10.96.0.10"]},
    "meshExtra": "kept",
}


def test_success_round_trip():
    success = Success.from_dict(SUCCESS_DATA)
    assert success.custom == {"meshExtra": "kept"}
    assert success.interfaces[0].sandbox == "/var/run/netns/a"
    assert success.to_dict() == SUCCESS_DATA


def test_success_defaults():
    success = Success.from_dict({"cniVersion": "0.4.0"})
    assert success.to_dict() == {
        "cniVersion": "0.4.0",
        "interfaces": [],
        "ips": [],
        "routes": [],
        "dns": None,
    }


def test_success_to_json_matches_dict():
    success = Success.from_dict(SUCCESS_DATA)
    text = success.to_json()
    assert json.loads(text) == success.to_dict()
    assert ", " not in text


def test_success_requires_version():
    with pytest.raises(ValueError):
        Success.from_dict({"interfaces": []})


def test_success_rejects_bad_ip():
    with pytest.raises(ValueError):
        Success.from_dict({"cniVersion": "0.4.0", "ips": [{"address": "nope"}]})


def test_version_response_dict():
    response = VersionResponse(CNI_VERSION, list(SUPPORTED_CNI_VERSIONS))
    assert response.to_dict() == {
        "cniVersion": str(CNI_VERSION),
        "supportedVersions": [str(v) for v in SUPPORTED_CNI_VERSIONS],
    }


def test_write_out_success():
    success = Success.from_dict(SUCCESS_DATA)
    buf = io.StringIO()
    assert write_out(success, buf) == 0
    assert json.loads(buf.getvalue()) == SUCCESS_DATA


def test_write_out_error_response_exits_zero():
    response = CniError(ErrorKind.MISSING_INTERFACES).into_response(CNI_VERSION)
    buf = io.StringIO()
    assert write_out(response, buf) == 0
    assert json.loads(buf.getvalue()) == response.to_dict()


@pytest.mark.parametrize("response", list(EmptyResponse))
def test_write_out_empty(response):
    buf = io.StringIO()
    assert write_out(response, buf) == 0
    assert buf.getvalue() == ""


def test_write_out_serialisation_failure():
    success = Success(cni_version=CNI_VERSION, custom={"bad": object()})
    buf = io.StringIO()
    assert write_out(success, buf) == 1
    assert buf.getvalue() != ""
    with pytest.raises(ValueError):
        json.loads(buf.getvalue())