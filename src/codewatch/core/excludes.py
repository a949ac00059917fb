"""Canonical watch filters.

HARDCODED_DIRS: Never reported, not user-configurable.
    - VCS internals and our own data directory

DEFAULT_SUPPORTED_EXTENSIONS / DEFAULT_IGNORE_PATTERNS: Defaults for
WatcherConfig. Both are replaced wholesale when a config sets them.
"""

from __future__ import annotations

# =============================================================================
# HARDCODED - Never reported, not user-configurable
# =============================================================================

HARDCODED_DIRS: frozenset[str] = frozenset(
    (
        # VCS internals
        ".git",
        ".svn",
        ".hg",
        ".bzr",
        # CodeWatch data
        ".codewatch",
    )
)

# =============================================================================
# Extension allowlist
# =============================================================================

DEFAULT_SUPPORTED_EXTENSIONS: tuple[str, ...] = (
    # Web / JavaScript
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    # Python
    ".py",
    # JVM
    ".java",
    ".kt",
    ".scala",
    # C family
    ".c",
    ".h",
    ".cpp",
    ".hpp",
    ".cs",
    ".m",
    ".mm",
    # Others
    ".go",
    ".rs",
    ".php",
    ".rb",
    ".swift",
    # Docs
    ".md",
    ".markdown",
    ".ipynb",
)

# =============================================================================
# Ignore globs
# =============================================================================
# Matched against root-relative POSIX paths. "dir/**" prunes a directory at any
# depth; bare file globs ("*.log") match the basename.

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    # Dependencies and build outputs
    "node_modules/**",
    "dist/**",
    "build/**",
    "out/**",
    "target/**",
    "coverage/**",
    ".nyc_output/**",
    # Editors
    ".vscode/**",
    ".idea/**",
    "*.swp",
    "*.swo",
    # VCS
    ".git/**",
    ".svn/**",
    ".hg/**",
    # Caches
    ".cache/**",
    "__pycache__/**",
    ".pytest_cache/**",
    ".mypy_cache/**",
    ".ruff_cache/**",
    ".venv/**",
    # Logs and scratch
    "logs/**",
    "tmp/**",
    "temp/**",
    "*.log",
    # Environment files
    ".env",
    ".env.*",
    "*.local",
    # Lockfiles
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "Cargo.lock",
    # Bundled / generated assets
    "*.min.js",
    "*.min.css",
    "*.min.map",
    "*.bundle.js",
    "*.bundle.css",
    "*.chunk.js",
    "*.vendor.js",
    "*.polyfills.js",
    "*.runtime.js",
    "*.map",
)


def is_hardcoded_dir(name: str) -> bool:
    """Check if a directory name is never reported."""
    return name in HARDCODED_DIRS
