# kindling

kindling is a library of building blocks for local Kubernetes clusters
whose "nodes" are Docker containers. Most of it drives the `docker` command
line, so Docker must be installed and reachable by the user running it.

## Installation

```
pip install .
```

For running the test suite:

```
pip install .[test]
pytest
```

## Examples

Splitting an image reference into repository and tag, resolving the
implicit `latest` and keeping a digest as part of the tag:

```python
from kindling.docker import split_image

split_image("alpine")                    # ("alpine", "latest")
split_image("k8s.gcr.io/coredns:1.1.3")  # ("k8s.gcr.io/coredns", "1.1.3")
split_image("alpine@sha256:28ef")        # ("alpine", "latest@sha256:28ef")
```

Describing mounts and port mappings, encoded with the field names used in
cluster configuration files:

```python
from kindling.cri import Mount, MountPropagation, PortMapping

mount = Mount(container_path="/data", host_path="/srv/data",
              propagation=MountPropagation.HOST_TO_CONTAINER)
mount.to_dict()
# {"propagation": "HostToContainer", "containerPath": "/data", "hostPath": "/srv/data"}

PortMapping.from_dict({"containerPort": 80, "hostPort": 8000, "protocol": "udp"})
```

Turning them into `docker run` flags:

```python
from kindling.runflags import build_run_args, generate_mount_bindings

generate_mount_bindings(mount)   # ["--volume=/srv/data:/data:rslave"]
build_run_args("kindest/node", run_args=["--detach"], mounts=[mount])
```

Filling in cluster configuration defaults:

```python
from kindling.config import Cluster, set_defaults_cluster

cluster = Cluster()
set_defaults_cluster(cluster)   # one control-plane node, ipv4, default subnets
```

Working with a node container and picking nodes by role:

```python
from kindling.node import Node
from kindling.roles import bootstrap_control_plane_node

nodes = [Node("kind-control-plane"), Node("kind-worker")]
bootstrap = bootstrap_control_plane_node(nodes)   # reads role labels via docker inspect
bootstrap.kube_version()
bootstrap.ip()                                    # (ipv4, ipv6)
```

## Modules

- `kindling.exec`: running commands locally (`LocalCmd`, `LocalCmder`,
  `command`) and helpers such as `combined_output_lines`,
  `run_logging_output_on_fail`, `run_with_stdout_reader` and
  `run_with_stdin_writer`. Failures raise `CommandError`.
- `kindling.container`: `ContainerCmder` and `ContainerCmd`, running
  commands inside a container with `docker exec --privileged`.
- `kindling.docker`: `split_image`, `inspect`, `image_inspect`, `image_id`,
  `copy_to`, `copy_from`, `kill`, `network_inspect`, `save`,
  `userns_remap`, `pull` and `pull_if_not_present`.
- `kindling.archive`: `get_archive_tags` lists the `repository:tag` tags in
  a docker image archive; `edit_archive_repositories` copies an archive
  while renaming its repositories.
- `kindling.cri`: `Mount`, `PortMapping` and their enums, with
  `to_dict` / `from_dict`.
- `kindling.runflags`: `generate_mount_bindings`, `generate_port_mappings`,
  `build_run_args` and `run` for `docker run`.
- `kindling.config`: the `Cluster`, `Node`, `Networking` and
  `PatchJSON6902` configuration types, with `set_defaults_cluster` and
  `set_defaults_node`.
- `kindling.constants`: the default cluster name and the label keys and
  role values put on node containers.
- `kindling.node`: the `Node` handle (commands, file copies, version, IPs,
  published ports, role, image loading, IPv6 enabling), `from_name`,
  `get_proxy_details` and `get_subnets`.
- `kindling.roles`: `select_nodes_by_role`, `control_plane_nodes`,
  `bootstrap_control_plane_node`, `secondary_control_plane_nodes` and
  `external_load_balancer_node`.
- `kindling.cni`: CNI config rendering and atomic writing
  (`CNIConfigInputs`, `compute_cni_config_inputs`, `render_cni_config`,
  `CNIConfigWriter`) and `make_nodes_reconciler`, which writes the config
  for the current node and calls a route-sync function you supply for the
  others.
- `kindling.masq`: `IPMasqAgent`, which keeps an iptables masquerade chain
  in place, and `masq_restore_rules`, which produces its
  `iptables-restore` input.

## What it does not do

- There is no command-line program; everything is used from Python.
- It does not create, list or delete clusters or node containers as a
  whole. It works with node containers you name yourself.
- `make_nodes_reconciler` does not add routes itself and nothing here talks
  to the Kubernetes API; the caller supplies the node list and the route
  function.