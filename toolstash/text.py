"""Centralized user-facing text for toolstash."""

from __future__ import annotations


class Styles:
    ERROR = "red"
    WARNING = "yellow"
    SUCCESS = "green"
    INFO = "dim"
    TITLE = "bold cyan"
    TABLE_HEADER = "bold magenta"


class Messages:
    APP_HELP = "toolstash: tool-result cache and semantic code index for agent runtimes."
    HELP_CACHE = "Inspect or clear the tool-result cache."
    HELP_CACHE_STATUS = "Show cache status."
    HELP_CACHE_CLEAR = "Clear all cached entries."
    HELP_CACHE_BY_TOOL = "Include a per-tool breakdown of cache activity."
    HELP_INDEX = "Build, inspect or clear the semantic index."
    HELP_INDEX_BUILD = "Build the semantic index for this workspace."
    HELP_INDEX_STATS = "Show semantic index stats."
    HELP_INDEX_CLEAR = "Clear the semantic index for this workspace."
    HELP_WORKSPACE = "Workspace root (defaults to the current directory)."
    HELP_QUERY = "Search query string (wrap in quotes for spaces)."
    HELP_SEARCH_TOP = "Number of top matches to return (defaults to config)."
    HELP_JSON = "Output results as JSON."
    HELP_VERBOSE = "Enable debug logging."

    ERROR_API_KEY_MISSING = (
        "Embedding API key is missing. Set `api_key` in ~/.toolstash/config.json "
        "or export TOOLSTASH_API_KEY / OPENAI_API_KEY."
    )
    ERROR_OPENAI_PREFIX = "Embeddings request failed: "
    ERROR_EMBED_HTTP = "embeddings request failed with {status}: {body}"
    ERROR_EMBED_COUNT = "embedding response mismatch (expected {expected}, got {actual})"
    ERROR_EMBED_FILE_COUNT = (
        "embedding response mismatch for {path} (expected {expected}, got {actual})"
    )
    ERROR_EMBED_DIM = "embedding dimension changed from {previous} to {current}"
    ERROR_EMBEDDER_MISSING = "no embedding backend configured for the semantic index"
    ERROR_EMBED_DECODE = "embedding blob length {length} is not a multiple of {element_size}"
    ERROR_INDEX_DISABLED = (
        "semantic index is disabled; enable it under \"semantic_index\" in the config"
    )
    ERROR_INDEX_MISSING = "semantic index not found at {path}"
    ERROR_EMPTY_QUERY = "search query cannot be empty"
    ERROR_CACHE_LOCK = "cache lock poisoned"
    ERROR_CACHE_STATUS = "Unable to read cache status: {reason}"

    ERROR_TOOL_PATTERN_EMPTY = "pattern must not be empty"
    ERROR_TOOL_LIMIT_ZERO = "limit must be greater than zero"
    ERROR_TOOL_OFFSET_ZERO = "offset must be a 1-indexed line number"
    ERROR_TOOL_DEPTH_ZERO = "depth must be greater than zero"
    ERROR_TOOL_PATH_ACCESS = "unable to access `{path}`: {reason}"
    ERROR_TOOL_ARGS = "failed to parse function arguments: {reason}"
    ERROR_TOOL_OFFSET_RANGE = "offset exceeds file length"
    ERROR_RG_TIMEOUT = "rg timed out after 30 seconds"
    ERROR_RG_LAUNCH = "failed to launch rg: {reason}. Ensure ripgrep is installed and on PATH."
    ERROR_RG_FAILED = "rg failed: {stderr}"
    INFO_GREP_NO_MATCHES = "No matches found."

    INFO_CACHE_ENABLED = "Cache enabled: {value}"
    INFO_CACHE_DIR = "Cache dir: {path}"
    INFO_CACHE_ENTRIES = "Entries: {count}"
    INFO_CACHE_SIZE = "Size bytes: {value}"
    INFO_CACHE_MAX = "Max bytes: {value}"
    INFO_CACHE_HIT_RATE = "Hit rate: {value}"
    INFO_CACHE_CLEARED = "Cache cleared"
    INFO_INDEX_DIR = "Index dir: {path}"
    INFO_INDEX_FILES = "Files: {count}"
    INFO_INDEX_CHUNKS = "Chunks: {count}"
    INFO_INDEX_MODEL = "Embedding model: {model}"
    INFO_INDEX_DIM = "Embedding dim: {dim}"
    INFO_INDEX_CREATED = "Created at: {value}"
    INFO_INDEX_RUNNING = "Indexing files under {path}..."
    INFO_INDEX_CLEARED = "Index cleared"
    INFO_NO_RESULTS = "No results found."

    TABLE_TITLE_BY_TOOL = "Cache activity by tool"
    TABLE_HEADER_TOOL = "Tool"
    TABLE_HEADER_HITS = "Hits"
    TABLE_HEADER_MISSES = "Misses"
    TABLE_HEADER_STORES = "Stores"
    TABLE_HEADER_EVICTIONS = "Evictions"
    TABLE_HEADER_HIT_RATE = "Hit rate"
