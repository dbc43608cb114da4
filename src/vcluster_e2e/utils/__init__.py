"""
Utility modules for the vcluster e2e harness.

- polling: eventually-consistent condition polling
- credentials: the transient kubeconfig file
- tunnel: the vcluster CLI tunnel collaborator
- kubernetes: the client handle for the virtual cluster
"""
