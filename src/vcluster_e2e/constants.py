"""
Constants used throughout the vcluster e2e harness.

This module defines:
- Default polling and request timing
- Tunnel CLI defaults
- The well-known resources probed and mutated by the scenarios
"""

# Polling defaults (seconds)
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_POLL_TIMEOUT = 60.0

# Per-request timeout for calls made through the client handle (seconds)
DEFAULT_REQUEST_TIMEOUT = 60.0

# Tunnel process handling
DEFAULT_VCLUSTER_BINARY = "vcluster"
DEFAULT_TUNNEL_STARTUP_GRACE = 1.0
TUNNEL_TERMINATE_TIMEOUT = 5.0

# Background proxy mode: the CLI detaches and leaves a docker container behind
DEFAULT_DOCKER_BINARY = "docker"
PROXY_CLEANUP_TIMEOUT = 30.0

# Credential file naming
KUBECONFIG_FILE_PREFIX = "vcluster_e2e_kubeconfig_"

# Consecutive 401/403 probe answers tolerated before bootstrap gives up
DEFAULT_AUTH_FAILURE_LIMIT = 10
AUTH_FAILURE_STATUSES = frozenset({401, 403})

# Readiness probe: a resource every cluster has
PROBE_NAMESPACE = "default"
PROBE_NAME = "default"

# Workload used by the convergence scenarios
DEFAULT_WORKLOAD_NAMESPACE = "default"
DEFAULT_WORKLOAD_NAME = "example-deployment"
DEFAULT_WORKLOAD_IMAGE = "nginx"
DEFAULT_WORKLOAD_CONTAINER = "nginx"
DEFAULT_WORKLOAD_APP_LABEL = "example"
DEFAULT_INITIAL_REPLICAS = 2
DEFAULT_SCALED_REPLICAS = 5

# Namespace created and deleted by the side-effect scenario
DEFAULT_SIDE_EFFECT_NAMESPACE = "vcluster-example"

# Scenario outcomes
OUTCOME_PASSED = "Passed"
OUTCOME_FAILED = "Failed"
OUTCOME_SKIPPED = "Skipped"

# CLI exit codes
EXIT_OK = 0
EXIT_SCENARIO_FAILED = 1
EXIT_BOOTSTRAP_FAILED = 2
EXIT_CANCELLED = 130
