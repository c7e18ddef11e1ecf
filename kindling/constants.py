"""Well known constants for clusters and their node containers."""

DEFAULT_CLUSTER_NAME = "kind"
"""The default cluster name."""

CLUSTER_LABEL_KEY = "io.k8s.sigs.kind.cluster"
"""Label applied to each node container to identify its cluster."""

NODE_ROLE_KEY = "io.k8s.sigs.kind.role"
"""Label applied to each node container to record its role."""

CONTROL_PLANE_NODE_ROLE_VALUE = "control-plane"
"""A node hosting a Kubernetes control plane (and, in one-node clusters, workloads)."""

WORKER_NODE_ROLE_VALUE = "worker"
"""A node hosting a Kubernetes worker."""

EXTERNAL_LOAD_BALANCER_NODE_ROLE_VALUE = "external-load-balancer"
"""A node hosting the external load balancer in front of the API servers."""

EXTERNAL_ETCD_NODE_ROLE_VALUE = "external-etcd"
"""A node hosting an external etcd instance."""