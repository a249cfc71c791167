"""Constants and configuration values for codejudge.

Sandbox resource caps live here as plain module constants. They are part
of the isolation contract and are deliberately not exposed through
``EngineSettings``.
"""

import os

# =============================================================================
# Sandbox Resource Caps
# =============================================================================

SANDBOX_MEMORY_LIMIT_MB = 512
SANDBOX_CPU_LIMIT = 1
SANDBOX_NANO_CPUS = SANDBOX_CPU_LIMIT * 1_000_000_000
SANDBOX_NETWORK_MODE = "none"

# Enforced inside the container by the entrypoint
SANDBOX_WALL_CLOCK_SECONDS = 30

# Orchestrator-side wait; slightly above the in-container limit
SANDBOX_OUTER_TIMEOUT_SECONDS = SANDBOX_WALL_CLOCK_SECONDS + 10

# Exit statuses meaning the run was killed for exceeding its time budget
# (124: coreutils timeout, 143: busybox timeout, 137: SIGKILL). 137 is also
# the memory cgroup kill; the orchestrator asks the engine which one it was.
SANDBOX_TIMEOUT_EXIT_CODES = frozenset({124, 137, 143})
SANDBOX_KILLED_EXIT_CODE = 137

# Only the tail of the container output is searched for the result line
SANDBOX_OUTPUT_SCAN_LIMIT = 1024 * 1024

DEFAULT_SANDBOX_BASE_IMAGE = "node:18-alpine"
SANDBOX_IMAGE_REPOSITORY = "codejudge-sandbox"
SANDBOX_CONTAINER_PREFIX = "codejudge-exec-"
SANDBOX_WORKSPACE_PREFIX = "codejudge_"
SANDBOX_LABEL = "codejudge.execution_id"


# =============================================================================
# Test Case Generation
# =============================================================================

DEFAULT_TEST_CASE_COUNT = int(os.environ.get("AI_TEST_CASES_COUNT", 5))

GENERATION_MAX_ATTEMPTS = 3
GENERATION_BACKOFF_SECONDS = 2.0

DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENROUTER_MODEL = "qwen/qwen-2.5-7b-instruct:free"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "deepseek-coder:6.7b"

GENERATION_TEMPERATURE = 0.3
GENERATION_MAX_TOKENS = 2000

# Seconds; local models are slow to answer
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0


# =============================================================================
# Execution Heuristics
# =============================================================================

# Variance of per-test execution times (ms^2) separating complexity classes
COMPLEXITY_CONSTANT_VARIANCE = 0.1
COMPLEXITY_LINEAR_VARIANCE = 1.0


# =============================================================================
# Concurrency
# =============================================================================

DEFAULT_MAX_CONCURRENT_SANDBOXES = int(
    os.environ.get("CODEJUDGE_MAX_CONCURRENT_SANDBOXES", 4)
)
