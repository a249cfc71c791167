"""Build context generation for sandbox images.

A build context is a directory holding everything the image needs: the
normalized module, the test cases, the harness that runs them, the npm
manifest and the Dockerfile. Nothing outside the context is copied into
the image.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from ..constants import (
    DEFAULT_SANDBOX_BASE_IMAGE,
    SANDBOX_MEMORY_LIMIT_MB,
    SANDBOX_WALL_CLOCK_SECONDS,
)
from ..models import CodeUnit, DependencySet, TestCase

logger = logging.getLogger(__name__)

HARNESS_FILENAME = "harness.mjs"
TEST_CASES_FILENAME = "test-cases.json"
MANIFEST_FILENAME = "package.json"
DOCKERFILE_FILENAME = "Dockerfile"

# Pre-approved packages and the exact versions installed for them
PROVISIONING_MAP: dict[str, str] = {
    "axios": "1.6.0",
    "node-fetch": "3.3.0",
    "googleapis": "128.0.0",
    "mongodb": "6.3.0",
    "pg": "8.11.0",
    "mysql2": "3.6.0",
    "lodash": "4.17.21",
    "moment": "2.29.4",
    "uuid": "9.0.0",
}

HARNESS_TEMPLATE = """\
import { readFileSync } from 'node:fs';
import { performance } from 'node:perf_hooks';

const MODULE_PATH = './__MODULE_FILE__';
const testCases = JSON.parse(
  readFileSync(new URL('./__TEST_CASES_FILE__', import.meta.url), 'utf8'),
);

function describeError(err) {
  if (err && typeof err.message === 'string') return err.message;
  return String(err);
}

function toJson(value) {
  const text = JSON.stringify(value);
  return text === undefined ? null : JSON.parse(text);
}

function sortKeys(value) {
  if (Array.isArray(value)) return value.map(sortKeys);
  if (value !== null && typeof value === 'object') {
    const sorted = {};
    for (const key of Object.keys(value).sort()) sorted[key] = sortKeys(value[key]);
    return sorted;
  }
  return value;
}

// Key order does not matter when comparing objects
function canonical(value) {
  return value === undefined ? undefined : JSON.stringify(sortKeys(toJson(value)));
}

function emit(payload) {
  process.stdout.write(JSON.stringify(payload) + '\\n');
}

function summarize(results, extra) {
  const total = testCases.length;
  const passed = results.filter((r) => r.passed).length;
  const errors = results.filter((r) => r.error !== null).length + (total - results.length);
  const times = results.map((r) => r.executionTime);
  return {
    ...extra,
    passRate: total > 0 ? (passed / total) * 100 : 0,
    avgExecutionTime: times.length > 0 ? times.reduce((a, b) => a + b, 0) / times.length : 0,
    runtimeErrorRate: total > 0 ? (errors / total) * 100 : 100,
    memoryUsage: Number((process.memoryUsage().heapUsed / 1024 / 1024).toFixed(2)),
    testResults: results,
    totalTests: total,
    passedTests: passed,
  };
}

async function runCase(fn, testCase) {
  const args = Array.isArray(testCase.input) ? testCase.input : [testCase.input];
  const expected = testCase.expectedOutput;
  const start = performance.now();
  try {
    let actual = fn(...args);
    if (actual && typeof actual.then === 'function') actual = await actual;
    const executionTime = performance.now() - start;
    return {
      passed: canonical(actual) === canonical(expected),
      input: args,
      expectedOutput: expected === undefined ? null : expected,
      actualOutput: toJson(actual),
      executionTime,
      error: null,
    };
  } catch (err) {
    return {
      passed: false,
      input: args,
      expectedOutput: expected === undefined ? null : expected,
      actualOutput: null,
      executionTime: performance.now() - start,
      error: describeError(err),
    };
  }
}

async function main() {
  let mod;
  try {
    mod = await import(MODULE_PATH);
  } catch (err) {
    emit(summarize([], { success: false, errorKind: 'module_load_failed', error: describeError(err) }));
    process.exitCode = 1;
    return;
  }

  const fn = typeof mod.default === 'function' ? mod.default : mod;
  if (typeof fn !== 'function') {
    emit(summarize([], { success: false, errorKind: 'not_callable', error: 'Default export is not a function' }));
    process.exitCode = 1;
    return;
  }

  const results = [];
  try {
    for (const testCase of testCases) {
      results.push(await runCase(fn, testCase));
    }
  } catch (err) {
    emit(summarize(results, { success: false, errorKind: 'harness_failed', error: describeError(err) }));
    process.exitCode = 1;
    return;
  }
  emit(summarize(results, { success: true }));
}

main();
"""


def normalize_tag(tag: str) -> str:
    """Lowercase and keep only ``[a-z0-9-]``."""
    return re.sub(r"[^a-z0-9-]", "", tag.lower())


def resolve_packages(dependencies: DependencySet) -> dict[str, str]:
    """Pinned packages for the tags in *dependencies*.

    Tags without an entry in ``PROVISIONING_MAP`` are dropped silently.
    """
    packages: dict[str, str] = {}
    for tag in dependencies.tags:
        name = normalize_tag(tag)
        if name in PROVISIONING_MAP:
            packages[name] = PROVISIONING_MAP[name]
    return packages


def render_manifest(packages: dict[str, str]) -> str:
    manifest = {
        "name": "codejudge-sandbox",
        "version": "1.0.0",
        "private": True,
        "dependencies": dict(sorted(packages.items())),
    }
    return json.dumps(manifest, indent=2) + "\n"


def render_harness(module_filename: str) -> str:
    return (
        HARNESS_TEMPLATE
        .replace("__MODULE_FILE__", module_filename)
        .replace("__TEST_CASES_FILE__", TEST_CASES_FILENAME)
    )


def render_dockerfile(
    module_filename: str,
    install_packages: bool,
    base_image: str = DEFAULT_SANDBOX_BASE_IMAGE,
) -> str:
    lines = [
        f"FROM {base_image}",
        "WORKDIR /app",
        f"COPY {MANIFEST_FILENAME} ./",
    ]
    if install_packages:
        lines.append("RUN npm install --omit=dev --ignore-scripts --no-audit --no-fund")
    lines += [
        f"COPY {module_filename} {HARNESS_FILENAME} {TEST_CASES_FILENAME} ./",
        f'ENV NODE_OPTIONS="--max-old-space-size={SANDBOX_MEMORY_LIMIT_MB}"',
        "USER node",
        f'CMD ["timeout", "{SANDBOX_WALL_CLOCK_SECONDS}", "node", "{HARNESS_FILENAME}"]',
    ]
    return "\n".join(lines) + "\n"


def write_build_context(
    workspace: Path,
    code_unit: CodeUnit,
    test_cases: list[TestCase],
    base_image: str = DEFAULT_SANDBOX_BASE_IMAGE,
) -> dict[str, str]:
    """Write every build input into *workspace*.

    Returns:
        The pinned packages that will be installed.
    """
    packages = resolve_packages(code_unit.dependencies)
    module_filename = code_unit.module_format.filename
    cases = [tc.model_dump(mode="json", by_alias=True) for tc in test_cases]

    files = {
        module_filename: code_unit.normalized_code,
        HARNESS_FILENAME: render_harness(module_filename),
        TEST_CASES_FILENAME: json.dumps(cases),
        MANIFEST_FILENAME: render_manifest(packages),
        DOCKERFILE_FILENAME: render_dockerfile(module_filename, bool(packages), base_image),
    }
    for name, content in files.items():
        (workspace / name).write_text(content, encoding="utf-8")

    if packages:
        logger.debug(f"Provisioning packages: {', '.join(sorted(packages))}")
    return packages
