# meshcni

Building blocks for a Kubernetes network mesh: a model of the cluster objects the mesh
works with, the logic that assigns identities to pods and nodes, matching of
NetworkPolicy selectors against those identities, the translation of services into
backend endpoint tables, and the request and response handling of a CNI plugin.

Controllers work on in-memory `Store` objects and on small abstract interfaces that you
implement against your own backend: `IdentityBpfState` and `PolicyBpfState` (the
datapath maps), `IdentityClient` (writing Identity resources) and `AgentClient` (the
node agent the plugin talks to).

## Modules

| Module | Contents |
| --- | --- |
| `meshcni.common` | Map key and value types: `Ip`, `KubeProtocol`, `ConntrackKeyV4`, `ConntrackValue`, `PolicyKey`, `PolicyValue`, `Action`, `PolicyProtocol`, `ServiceKeyV4`, `ServiceKeyV6`, `ServiceValue`, `EndpointKey`, `EndpointValueV4`, `EndpointValueV6`, `service_key_v4`, `service_key_v6` |
| `meshcni.k8s` | Lightweight Kubernetes objects (`Pod`, `Namespace`, `Node`, `Service`, `EndpointSlice` and their parts), `LabelSelector`, a thread-safe `Store`, `ReconcileAction` and `sanitize_pod_labels` |
| `meshcni.crds` | The `Cluster`, `Identity` and `MeshEndpoint` custom resources, `generate_mesh_endpoint_spec`, `kube_proto_from_str`, and the CRD printers `crd_gen_all`, `crd_gen_identity`, `crd_gen_cluster`, `crd_gen_meshendpoint` |
| `meshcni.selector` | NetworkPolicy model and matching: `policy_selects_identity`, `peer_selects_identity`, `label_selector_matches`, `ingress_rules_select_identity`, `egress_rules_select_identity`, `policy_affects_type` |
| `meshcni.policy` | Policy controller: `PolicyContext`, `PolicyBpfState`, `reconcile_identity`, `error_policy` |
| `meshcni.identity` | Identity controller: `IdentityContext`, `node_ips`, `pod_ips`, `reconcile_node`, `reconcile_pod`, `error_policy` |
| `meshcni.identity_gen` | Identity generation: `IdentityGenContext`, `identity_name`, `get_or_generate_identity`, `reconcile_namespace`, `error_policy` |
| `meshcni.cluster` | Cluster controller and child-controller shutdown: `new_cancellation`, `ClusterContext`, `reconcile`, `cleanup`, `error_policy` |
| `meshcni.cni_types` | CNI arguments, configuration and input: `Args`, `Command`, `parse_command`, `parse_key_value`, `Config`, `Input`, `RuntimeConfig`, `Interface`, `IpConfig`, `Route`, `Dns` |
| `meshcni.cni_response` | CNI results and errors: `Success`, `VersionResponse`, `CniErrorResponse`, `EmptyResponse`, `CniError`, `write_out` |
| `meshcni.plugin` | CNI commands: `add`, `delete`, `check`, `gc`, `version`, plus `parse_args` and `read_input` |
| `meshcni.tables` | Rows `IpId`, `ServiceWithEndpoints`, `Connection`, `PolicySet` and the borderless `render_table` |

## Examples

Protocol names and numbers:

```python
from meshcni.common import KubeProtocol

KubeProtocol.parse("tcp")       # KubeProtocol.TCP
KubeProtocol.from_number(17)    # KubeProtocol.UDP
KubeProtocol.parse("icmp")      # raises ValueError
```

The 16-byte address form used in map keys:

```python
from meshcni.common import Ip

ip = Ip.from_address("10.0.0.1")
ip.to_address()                 # IPv4Address('10.0.0.1')
```

CNI environment values:

```python
from meshcni.cni_types import parse_command, parse_key_value

parse_command("ADD")            # Command.ADD
parse_key_value("K8S_POD_NAME=web;K8S_POD_NAMESPACE=default")
# {'K8S_POD_NAME': 'web', 'K8S_POD_NAMESPACE': 'default'}
```

Printing the YAML of every custom resource definition:

```python
from meshcni.crds import crd_gen_all

crd_gen_all()
```

## Plugin behaviour

The plugin speaks CNI 0.4.0. `add` either asks the agent (through an `AgentClient`) to
set up the interface in the given network namespace, or, when the input carries a
previous result, runs chained and sends a request for every interface of that result
that has no sandbox. `delete` works only chained and needs a previous result. `check`
and `gc` return empty results and `version` reports the supported versions. Failures
come back as `CniErrorResponse` values with the CNI error codes (for example 4 for
invalid environment variables, 6 for JSON errors) and codes 101 to 105 for
mesh-specific errors. `write_out` writes a response as JSON and returns the exit code.

## What this package does not do

- It has no installed commands: there is no plugin executable and no command-line
  client. `parse_args`, `read_input`, the command functions and `write_out` are the
  pieces such a program would be built from.
- It does not connect to the Kubernetes API or to the node agent. Watching resources,
  filling the stores and implementing `IdentityClient` and `AgentClient` are left to the
  caller.
- It does not load or run datapath programs; `IdentityBpfState` and `PolicyBpfState`
  only describe the map updates.

## Tests

The tests use pytest and live in `tests/`.