"""SR-IOV network resource types and policy logic, a node state REST client, a fake clientset, listers and informers."""

__version__ = "0.1.0"