"""
Configuration management for tube-publisher.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

The configuration file contains:
    - YouTube access token and resumable upload endpoint
    - Storage backend holding the media (local, drive, dropbox) and its token
    - Upload tuning (chunk size, state file location, timeout, retries)
    - Output directory for log files
    - Number of playlists reconciled in parallel

Access tokens may be left out of the file and provided through the
environment instead (TUBE_YOUTUBE_TOKEN, TUBE_STORAGE_TOKEN). A .env file
in the working directory is loaded first if present.

Configuration File Location:
    The config.yaml file must be in the current working directory
    when running the application.

Example config.yaml:
    youtube:
      access_token: "ya29...."

    storage:
      backend: drive
      access_token: "ya29...."

    upload:
      chunk_size_mb: 16
      state_file: "~/.config/tube-publisher/uploader-state.json"
      timeout: 300
      max_retries: 5

    output:
      directory: "~/.local/share/tube-publisher"

    playlists:
      threads: 4
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from tube_publisher.core.exceptions import ConfigError


# Default configuration file name (always in current working directory)
CONFIG_FILENAME = "config.yaml"

# Environment fallbacks for secrets
YOUTUBE_TOKEN_ENV = "TUBE_YOUTUBE_TOKEN"
STORAGE_TOKEN_ENV = "TUBE_STORAGE_TOKEN"

DEFAULT_UPLOAD_ENDPOINT = "https://www.googleapis.com/upload/youtube/v3/videos"
DEFAULT_STATE_FILE = "~/.config/tube-publisher/uploader-state.json"
DEFAULT_OUTPUT_DIRECTORY = "~/.local/share/tube-publisher"

STORAGE_BACKENDS = ("local", "drive", "dropbox")

# The resumable protocol requires every chunk but the last to be a
# multiple of 256 KiB.
CHUNK_GRANULARITY = 256 * 1024
MIB = 1024 * 1024


@dataclass(frozen=True)
class YouTubeConfig:
    """
    YouTube API configuration.

    Attributes:
        access_token: OAuth bearer token with the youtube.upload and
                      youtube scopes. Obtaining it is outside this tool.
        upload_endpoint: Resumable upload endpoint for videos.insert.
    """
    access_token: str
    upload_endpoint: str


@dataclass(frozen=True)
class StorageConfig:
    """
    Where the media files live.

    Attributes:
        backend: One of "local", "drive" or "dropbox".
        access_token: Bearer token for the cloud backend.
                      Empty for the local backend.
    """
    backend: str
    access_token: str


@dataclass(frozen=True)
class UploadConfig:
    """
    Upload behavior configuration.

    Attributes:
        chunk_size: Bytes per PUT request. Always a positive multiple of
                    256 KiB. Default: 16 MiB.
        state_file: Path of the session state record. Its existence means
                    an upload is in progress.
        timeout: Seconds before a single HTTP request is abandoned.
        max_retries: Consecutive server errors tolerated on chunk PUTs
                     before giving up for this run.
    """
    chunk_size: int
    state_file: Path
    timeout: float
    max_retries: int


@dataclass(frozen=True)
class OutputConfig:
    """
    Output directory configuration.

    Attributes:
        directory: Absolute path where the logs subdirectory is created.
    """
    directory: Path


@dataclass(frozen=True)
class PlaylistsConfig:
    """
    Playlist reconciliation configuration.

    Attributes:
        threads: Playlists reconciled concurrently. Operations within one
                 playlist are always sequential.
    """
    threads: int


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    This is the main configuration object that aggregates all configuration
    sections. It is created by load_config() and should be treated as
    immutable (frozen dataclass).

    Example:
        config = load_config()
        print(f"Chunk size: {config.upload.chunk_size} bytes")
        print(f"State file: {config.upload.state_file}")
    """
    youtube: YouTubeConfig
    storage: StorageConfig
    upload: UploadConfig
    output: OutputConfig
    playlists: PlaylistsConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     is missing required fields, or contains invalid values.

    Behavior:
        1. Load .env (if any) so token fallbacks are visible
        2. Locate config file (explicit path or CWD/config.yaml)
        3. Read and parse YAML content
        4. Validate structure (required sections exist)
        5. Parse every section, applying defaults
        6. Create and return frozen Config object
    """
    load_dotenv()

    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    _validate_config(raw_config)

    return Config(
        youtube=_parse_youtube_config(raw_config.get("youtube") or {}),
        storage=_parse_storage_config(raw_config["storage"]),
        upload=_parse_upload_config(raw_config.get("upload")),
        output=_parse_output_config(raw_config.get("output")),
        playlists=_parse_playlists_config(raw_config.get("playlists")),
    )


def _validate_config(raw_config: dict[str, Any]) -> None:
    """
    Validate the raw configuration dictionary structure.

    Only 'storage' is mandatory; every other section has defaults or
    environment fallbacks. Sections that are present must be dictionaries.
    """
    if "storage" not in raw_config:
        raise ConfigError(
            "Missing required section: 'storage'",
            details={"missing_section": "storage"}
        )

    for section in ("youtube", "storage", "upload", "output", "playlists"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )


def _token(section: dict[str, Any], field: str, env_var: str) -> str:
    """Read a token from the section, falling back to the environment."""
    value = section.get("access_token")
    if value is None:
        value = os.environ.get(env_var, "")
    if not isinstance(value, str):
        raise ConfigError(
            f"'{field}' must be a string",
            details={"field": field}
        )
    return value.strip()


def _parse_youtube_config(youtube_section: dict[str, Any]) -> YouTubeConfig:
    """
    Parse and validate the YouTube configuration section.

    Raises:
        ConfigError: If no access token is configured anywhere.
    """
    access_token = _token(youtube_section, "youtube.access_token", YOUTUBE_TOKEN_ENV)
    if not access_token:
        raise ConfigError(
            f"'youtube.access_token' must be set (or export {YOUTUBE_TOKEN_ENV})",
            details={"field": "youtube.access_token"}
        )

    endpoint = youtube_section.get("upload_endpoint", DEFAULT_UPLOAD_ENDPOINT)
    if not isinstance(endpoint, str) or not endpoint.startswith("http"):
        raise ConfigError(
            "'youtube.upload_endpoint' must be an http(s) URL",
            details={"field": "youtube.upload_endpoint", "value": endpoint}
        )

    return YouTubeConfig(access_token=access_token, upload_endpoint=endpoint)


def _parse_storage_config(storage_section: dict[str, Any]) -> StorageConfig:
    """
    Parse and validate the storage configuration section.

    Raises:
        ConfigError: If the backend is unknown, or a cloud backend has
                     no access token.
    """
    backend = storage_section.get("backend", "")
    if backend not in STORAGE_BACKENDS:
        raise ConfigError(
            f"'storage.backend' must be one of {', '.join(STORAGE_BACKENDS)}",
            details={"field": "storage.backend", "value": backend}
        )

    access_token = _token(storage_section, "storage.access_token", STORAGE_TOKEN_ENV)
    if backend != "local" and not access_token:
        raise ConfigError(
            f"'storage.access_token' is required for the {backend} backend "
            f"(or export {STORAGE_TOKEN_ENV})",
            details={"field": "storage.access_token"}
        )

    return StorageConfig(backend=backend, access_token=access_token)


def _parse_upload_config(upload_section: dict[str, Any] | None) -> UploadConfig:
    """
    Parse and validate the upload configuration section.

    Applies defaults if section is missing or fields are not specified:
        chunk_size_mb: 16
        state_file: ~/.config/tube-publisher/uploader-state.json
        timeout: 300
        max_retries: 5

    Raises:
        ConfigError: If the chunk size is not a positive multiple of
                     256 KiB, or numeric fields are out of range.
    """
    section = upload_section or {}

    raw_chunk = section.get("chunk_size_mb", 16)
    if isinstance(raw_chunk, bool) or not isinstance(raw_chunk, (int, float)):
        raise ConfigError(
            "'upload.chunk_size_mb' must be a number",
            details={"field": "upload.chunk_size_mb", "value": raw_chunk}
        )
    chunk_size = int(raw_chunk * MIB)
    if chunk_size <= 0 or chunk_size % CHUNK_GRANULARITY != 0:
        raise ConfigError(
            "'upload.chunk_size_mb' must be a positive multiple of 0.25",
            details={"field": "upload.chunk_size_mb", "value": raw_chunk}
        )

    raw_state = section.get("state_file", DEFAULT_STATE_FILE)
    if not isinstance(raw_state, str) or not raw_state.strip():
        raise ConfigError(
            "'upload.state_file' must be a non-empty string",
            details={"field": "upload.state_file"}
        )
    state_file = Path(raw_state.strip()).expanduser().resolve()

    timeout = section.get("timeout", 300)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(
            "'upload.timeout' must be a positive number of seconds",
            details={"field": "upload.timeout", "value": timeout}
        )

    max_retries = section.get("max_retries", 5)
    if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
        raise ConfigError(
            "'upload.max_retries' must be a non-negative integer",
            details={"field": "upload.max_retries", "value": max_retries}
        )

    return UploadConfig(
        chunk_size=chunk_size,
        state_file=state_file,
        timeout=float(timeout),
        max_retries=max_retries
    )


def _parse_output_config(output_section: dict[str, Any] | None) -> OutputConfig:
    """
    Parse the output configuration section.

    Expands ~ to home directory and converts to absolute Path.
    Does NOT create the directory (that happens when logging starts).
    """
    section = output_section or {}
    directory = section.get("directory", DEFAULT_OUTPUT_DIRECTORY)

    if not isinstance(directory, str) or not directory.strip():
        raise ConfigError(
            "'output.directory' must be a non-empty string",
            details={"field": "output.directory"}
        )

    return OutputConfig(directory=Path(directory.strip()).expanduser().resolve())


def _parse_playlists_config(playlists_section: dict[str, Any] | None) -> PlaylistsConfig:
    """Parse the playlists section. Default threads: 4."""
    section = playlists_section or {}
    threads = section.get("threads", 4)

    if isinstance(threads, bool) or not isinstance(threads, int) or threads < 1:
        raise ConfigError(
            "'playlists.threads' must be a positive integer",
            details={"field": "playlists.threads", "value": threads}
        )

    return PlaylistsConfig(threads=threads)
