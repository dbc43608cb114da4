"""
vcluster-e2e - end-to-end verification harness for virtual clusters.

Connects to a virtual cluster through the vcluster CLI tunnel, validates the
connection, then runs mutating scenarios and waits for their effects to
converge.
"""

__version__ = "0.1.0"
