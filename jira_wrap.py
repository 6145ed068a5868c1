#!/usr/bin/env python3
"""
jira-wrap - Jira command-line wrapper

Drive everyday Jira work from the terminal: list, view, create, comment on,
transition and assign tickets, and manage sprints and epics. Work-item
operations go through the Atlassian CLI (acli); sprint and epic-link updates
go through the Jira REST API. Settings come from a per-project
.jira-config.ini file and credentials from ~/.config/jira-cli/credentials.

Copyright (c) 2025
All rights reserved.

Redistribution and use in source and binary forms, with or without
modification, are permitted provided that the following conditions are met:

1. Redistributions of source code must retain the above copyright notice, this
   list of conditions and the following disclaimer.

2. Redistributions in binary form must reproduce the above copyright notice,
   this list of conditions and the following disclaimer in the documentation
   and/or other materials provided with the distribution.

3. Neither the name of the copyright holder nor the names of its
   contributors may be used to endorse or promote products derived from
   this software without specific prior written permission.

THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE
DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE
FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL
DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY,
OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE
OF THIS SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
"""

import argparse
import configparser
import csv
import getpass
import io
import json
import logging
import os
import re
import shlex
import subprocess
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

import requests

__version__ = "1.0.0"


# Constants
class Constants:
    """Application constants."""

    SCRIPT_NAME = "jira-wrap"
    LOGGER_NAME = "jira-wrap"

    # Files
    PROJECT_CONFIG_FILE = ".jira-config.ini"
    CREDENTIALS_FILE = os.path.join("~", ".config", "jira-cli", "credentials")

    # Built-in defaults
    DEFAULT_API_VERSION = "3"
    DEFAULT_LIMIT = 10
    DEFAULT_TYPE = "Task"
    DEFAULT_PRIORITY = "Medium"
    DEFAULT_EPIC_LINK_FIELD = "customfield_10014"

    # API
    API_TIMEOUT = 30
    AGILE_API_PATH = "/rest/agile/1.0"

    # Atlassian CLI
    ACLI_BINARY = "acli"
    ACLI_TIMEOUT = 120
    ACLI_INSTALL_URL = (
        "https://developer.atlassian.com/cloud/acli/guides/introduction/"
    )

    # Listing sizes for nested queries (sprint/epic contents)
    NESTED_LIST_LIMIT = 50
    CLOSED_SPRINT_LIMIT = 5

    COMMON_ISSUE_TYPES = ("Task", "Bug", "Story", "Epic", "Subtask")
    DRY_RUN_PREVIEW_LENGTH = 50

    # Validation patterns
    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
    ISSUE_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9]*-\d+$")
    ISSUE_KEY_SEARCH = re.compile(r"[A-Z][A-Z0-9]*-\d+")
    INIT_URL_PATTERN = re.compile(r"^https?://[a-zA-Z0-9.-]+\.[a-zA-Z][a-zA-Z]+/?$")

    TRUE_VALUES = {"1", "true", "yes", "on"}


class LogLevel(Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class Command(Enum):
    """Top-level commands."""

    INIT = "init"
    LIST = "list"
    VIEW = "view"
    CREATE = "create"
    COMMENT = "comment"
    TRANSITION = "transition"
    ASSIGN = "assign"
    SPRINT = "sprint"
    EPIC = "epic"
    CONFIG = "config"
    HELP = "help"
    VERSION = "version"


class SubCommand(Enum):
    """Sub-commands of the sprint and epic commands."""

    LIST = "list"
    VIEW = "view"
    CREATE = "create"
    START = "start"
    ADD = "add"
    CLOSE = "close"


class OutputFormat(Enum):
    """Rendering of command results."""

    DEFAULT = "default"
    JSON = "json"
    CSV = "csv"


# Commands that run without a project configuration file
NO_CONFIG_COMMANDS = {Command.INIT, Command.CONFIG, Command.HELP, Command.VERSION}

# Commands whose errors are not followed by the --help hint
NO_HINT_COMMANDS = {Command.HELP, Command.INIT}


class JiraError(Exception):
    """Base exception for jira-wrap errors."""

    exit_code = 1

    def __init__(
        self,
        message: str,
        context: Optional[str] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.context = context
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(JiraError):
    """Project configuration is missing or invalid."""

    pass


class ValidationError(JiraError):
    """User input failed validation."""

    pass


class AuthenticationError(JiraError):
    """Credentials are missing or were rejected."""

    pass


class TransportError(JiraError):
    """An external process or HTTP call failed."""

    pass


class APIError(TransportError):
    """Jira answered with an error."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        context: Optional[str] = None,
    ):
        super().__init__(message, context=context)
        self.status_code = status_code
        self.response_text = response_text


class UsageError(JiraError):
    """Unknown command, sub-command or flag."""

    pass


def setup_logging(
    level: LogLevel = LogLevel.WARNING, include_timestamp: bool = True
) -> logging.Logger:
    """Set up logging configuration."""
    logger = logging.getLogger(Constants.LOGGER_NAME)
    logger.setLevel(level.value)

    # Remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    # Diagnostics go to stderr so they never mix with command output
    handler = logging.StreamHandler(sys.stderr)

    if include_timestamp:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = logging.Formatter("%(levelname)s - %(message)s")

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


class Colors:
    """ANSI color codes for terminal output."""

    RED = "\033[91m"  # Errors
    YELLOW = "\033[93m"  # Dry-run markers
    BOLD = "\033[1m"  # Field names
    RESET = "\033[0m"

    @staticmethod
    def paint(text: str, color: str, stream=None) -> str:
        """Color text only when the stream it is written to is a terminal."""
        if stream is None:
            stream = sys.stdout
        if not stream.isatty():
            return text
        return f"{color}{text}{Colors.RESET}"


@dataclass(frozen=True)
class ProjectConfig:
    """Resolved per-project settings."""

    tracker_url: str
    project_key: str = ""
    api_version: str = Constants.DEFAULT_API_VERSION
    default_limit: int = Constants.DEFAULT_LIMIT
    default_issue_type: str = Constants.DEFAULT_TYPE
    default_priority: str = Constants.DEFAULT_PRIORITY
    epic_link_field: str = Constants.DEFAULT_EPIC_LINK_FIELD
    board_id: Optional[int] = None

    @property
    def host(self) -> str:
        return urlparse(self.tracker_url).netloc

    @property
    def base_url(self) -> str:
        parsed = urlparse(self.tracker_url)
        return f"{parsed.scheme}://{parsed.netloc}"

    @property
    def api_url(self) -> str:
        return f"{self.base_url}/rest/api/{self.api_version}"

    @property
    def agile_url(self) -> str:
        return f"{self.base_url}{Constants.AGILE_API_PATH}"


@dataclass(frozen=True)
class Credentials:
    username: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class CommandContext:
    """Everything a handler needs to know about one invocation.

    ``entity_id`` holds the ticket, sprint or epic the command acts on.
    ``flags`` holds explicit flag values plus the remaining positional values
    (comment text, status, names, container ids); an explicit flag always
    wins over a positional value for the same field.
    """

    command: Command
    subcommand: Optional[SubCommand] = None
    entity_id: Optional[str] = None
    flags: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    dry_run: bool = False
    verbose: bool = False
    output_format: OutputFormat = OutputFormat.DEFAULT

    def flag(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.flags.get(name)
        return value if value else default


#
# Configuration
#

PROJECT_CONFIG_TEMPLATE = """; jira-wrap project configuration file
; This file configures jira-wrap for the current project

[jira]
; REQUIRED: Jira URL (without trailing slash)
url={url}

; REQUIRED: Project key
project={project}

; Jira REST API version
api_version={api_version}

; Custom field holding the Epic Link (differs between Jira instances)
; epic_link_field={epic_link_field}

; Board used by sprint commands (looked up from the project when unset)
; board=1

[defaults]
; Default limit for listing tickets
limit={limit}

; Default issue type
type={issue_type}

; Default priority
priority={priority}
"""


def normalize_tracker_url(url: str) -> str:
    """Strip the trailing slash and make sure the URL is absolute."""
    url = url.strip().rstrip("/")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f"Invalid Jira URL: {url!r}",
            context="Use an absolute URL such as https://your-domain.atlassian.net",
        )
    return url


def _parse_int(value: str, name: str, source: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid value for {name}: {value!r}", context=f"Expected a number in {source}"
        )


class ProjectConfigFile:
    """The ``.jira-config.ini`` file of a project directory."""

    def __init__(self, directory: Optional[str] = None) -> None:
        if directory is None:
            directory = os.getcwd()

        self.path = os.path.join(directory, Constants.PROJECT_CONFIG_FILE)
        self.config = configparser.ConfigParser(interpolation=None)
        self.logger = logging.getLogger(Constants.LOGGER_NAME)

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        value = self.config.get(section, key, fallback=None)
        return value if value else fallback

    def load(self, environ: Optional[Mapping[str, str]] = None) -> ProjectConfig:
        """Parse the file and apply environment overrides on top of it."""
        if environ is None:
            environ = os.environ

        if not self.exists():
            raise ConfigurationError(
                "No project configuration found in the current directory.",
                context=f"Run '{Constants.SCRIPT_NAME} init' to create "
                f"{Constants.PROJECT_CONFIG_FILE}",
            )

        self.logger.debug(f"Loading project configuration from {self.path}")
        try:
            self.config.read(self.path, encoding="utf-8")
        except (configparser.Error, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Could not parse {self.path}", context=str(e))

        url = environ.get("JIRA_URL") or self.get("jira", "url")
        if not url:
            raise ConfigurationError(
                "Jira URL is not set in your project configuration.",
                context=f"Edit {self.path} and set url in the [jira] section",
            )

        limit = self.get("defaults", "limit")
        board = environ.get("JIRA_BOARD_ID") or self.get("jira", "board")

        return ProjectConfig(
            tracker_url=normalize_tracker_url(url),
            project_key=environ.get("JIRA_PROJECT") or self.get("jira", "project", ""),
            api_version=environ.get("JIRA_API_VERSION")
            or self.get("jira", "api_version", Constants.DEFAULT_API_VERSION),
            default_limit=_parse_int(limit, "limit", self.path)
            if limit
            else Constants.DEFAULT_LIMIT,
            default_issue_type=self.get("defaults", "type", Constants.DEFAULT_TYPE),
            default_priority=self.get(
                "defaults", "priority", Constants.DEFAULT_PRIORITY
            ),
            epic_link_field=environ.get("JIRA_EPIC_LINK_FIELD")
            or self.get("jira", "epic_link_field", Constants.DEFAULT_EPIC_LINK_FIELD),
            board_id=_parse_int(board, "board", self.path) if board else None,
        )

    def write(
        self,
        url: str,
        project_key: str,
        api_version: str = Constants.DEFAULT_API_VERSION,
        limit: int = Constants.DEFAULT_LIMIT,
        issue_type: str = Constants.DEFAULT_TYPE,
        priority: str = Constants.DEFAULT_PRIORITY,
        overwrite: bool = False,
    ) -> None:
        """Write a fresh configuration file readable by the owner only."""
        if self.exists() and not overwrite:
            raise ConfigurationError(
                f"{self.path} already exists",
                context=f"Run '{Constants.SCRIPT_NAME} init --force' to replace it",
            )

        content = PROJECT_CONFIG_TEMPLATE.format(
            url=normalize_tracker_url(url),
            project=project_key,
            api_version=api_version,
            epic_link_field=Constants.DEFAULT_EPIC_LINK_FIELD,
            limit=limit,
            issue_type=issue_type,
            priority=priority,
        )

        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(self.path, 0o600)


def load_project_config(
    directory: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> ProjectConfig:
    return ProjectConfigFile(directory).load(environ)


def write_project_config(
    directory: Optional[str], url: str, project_key: str, **kwargs
) -> str:
    """Write ``.jira-config.ini`` into ``directory`` and return its path."""
    config_file = ProjectConfigFile(directory)
    config_file.write(url, project_key, **kwargs)
    return config_file.path


class CredentialStore:
    """A single ``username:secret`` line in a file only the owner can read."""

    def __init__(self, path: Optional[str] = None) -> None:
        if path is None:
            path = Constants.CREDENTIALS_FILE

        self.path = os.path.expanduser(path)

    def is_configured(self) -> bool:
        return os.path.isfile(self.path) and os.path.getsize(self.path) > 0

    def load(self) -> Optional[Credentials]:
        """Return the stored credentials, or None when none are configured."""
        if not os.path.isfile(self.path):
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                lines = [line.strip() for line in f if line.strip()]
        except UnicodeDecodeError as e:
            raise AuthenticationError(f"Could not read {self.path}", context=str(e))

        if not lines:
            return None
        if len(lines) != 1:
            raise AuthenticationError(
                "Credentials file must contain exactly one username:secret line",
                context=self.path,
            )

        username, sep, secret = lines[0].partition(":")
        if not sep or not username or not secret:
            raise AuthenticationError(
                "Malformed credentials file",
                context=f"Expected 'username:api_token' in {self.path}",
            )
        return Credentials(username=username, secret=secret)

    def save(self, username: str, secret: str) -> None:
        """Replace the stored credentials."""
        if not username or not secret:
            raise ValidationError("Both username and API token are required")
        if ":" in username or "\n" in username or "\n" in secret:
            raise ValidationError(
                "Username must not contain ':' and neither value may span lines"
            )

        os.makedirs(os.path.dirname(self.path), mode=0o700, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{username}:{secret}\n")
        os.chmod(self.path, 0o600)


def resolve_credentials(store: CredentialStore, dry_run: bool) -> Optional[Credentials]:
    """Load credentials, tolerating their absence in dry-run mode."""
    logger = logging.getLogger(Constants.LOGGER_NAME)

    try:
        credentials = store.load()
    except AuthenticationError as e:
        if not dry_run:
            raise
        logger.warning(f"{e}; continuing because of --dry-run")
        return None

    if credentials is None:
        if not dry_run:
            raise AuthenticationError(
                "Jira credentials are not configured.",
                context=f"Run '{Constants.SCRIPT_NAME} config' to store them in "
                f"{store.path} (format: username:api_token)",
            )
        logger.warning(
            "Jira credentials are not configured; continuing because of --dry-run"
        )
    return credentials


#
# Command-line schema and parsing
#


@dataclass(frozen=True)
class FlagSpec:
    """A named flag: value flags take exactly one argument, others none."""

    long: str
    short: Optional[str] = None
    takes_value: bool = True
    metavar: Optional[str] = None
    help: str = ""
    choices: Optional[Tuple[str, ...]] = None

    @property
    def dest(self) -> str:
        return self.long.lstrip("-").replace("-", "_")


@dataclass(frozen=True)
class CommandSpec:
    """Positional slots and extra flags accepted by one command.

    The ``entity`` slot becomes ``CommandContext.entity_id``; every other
    slot lands in ``CommandContext.flags`` under its own name.
    """

    help: str
    positionals: Tuple[str, ...] = ()
    entity: Optional[str] = None
    extra_flags: Tuple[FlagSpec, ...] = ()
    subcommands: Optional[Mapping[SubCommand, "CommandSpec"]] = None


GLOBAL_FLAGS = (
    FlagSpec("--project", "-p", metavar="<proj>", help="Specify project (default: from .jira-config.ini)"),
    FlagSpec("--limit", "-l", metavar="<num>", help=f"Limit number of results (default: {Constants.DEFAULT_LIMIT})"),
    FlagSpec("--query", "-q", metavar="<jql>", help="Custom JQL query"),
    FlagSpec("--summary", "-s", metavar="<text>", help="Ticket summary"),
    FlagSpec("--description", "-d", metavar="<d>", help="Ticket description"),
    FlagSpec("--type", "-t", metavar="<type>", help=f"Ticket type (default: {Constants.DEFAULT_TYPE})"),
    FlagSpec("--assignee", "-a", metavar="<email>", help="Assignee email"),
    FlagSpec("--priority", "-r", metavar="<prio>", help=f"Priority (default: {Constants.DEFAULT_PRIORITY}) - informational only"),
    FlagSpec("--status", metavar="<status>", help="Status for transition"),
    FlagSpec("--parent", metavar="<key>", help="Parent issue key for subtasks or epic for stories"),
    FlagSpec("--start-date", metavar="<date>", help="Start date (YYYY-MM-DD) for sprints"),
    FlagSpec("--end-date", metavar="<date>", help="End date (YYYY-MM-DD) for sprints"),
    FlagSpec("--goal", metavar="<text>", help="Sprint goal"),
    FlagSpec("--dry-run", takes_value=False, help="Show what would happen without making changes"),
    FlagSpec("--verbose", "-v", takes_value=False, help="Show detailed debugging information"),
    FlagSpec(
        "--format",
        metavar="<fmt>",
        choices=tuple(fmt.value for fmt in OutputFormat),
        help="Output format: default, json, csv (default: default)",
    ),
    FlagSpec("--help", "-h", takes_value=False, help="Show this help message"),
)

FORCE_FLAG = FlagSpec(
    "--force", takes_value=False, help="Overwrite an existing project configuration (init only)"
)

# Flags that map onto CommandContext attributes instead of the flags mapping
CONTEXT_FLAGS = {"dry_run", "verbose", "format", "help"}

COMMAND_SCHEMA: Dict[Command, CommandSpec] = {
    Command.INIT: CommandSpec(
        "Initialize a project with Jira configuration",
        positionals=("url",),
        extra_flags=(FORCE_FLAG,),
    ),
    Command.LIST: CommandSpec("List tickets (default command)"),
    Command.VIEW: CommandSpec(
        "View details of a specific ticket", positionals=("ticket_id",), entity="ticket_id"
    ),
    Command.CREATE: CommandSpec("Create a new ticket"),
    Command.COMMENT: CommandSpec(
        "Add a comment to a ticket", positionals=("ticket_id", "comment"), entity="ticket_id"
    ),
    Command.TRANSITION: CommandSpec(
        "Change ticket status", positionals=("ticket_id", "status"), entity="ticket_id"
    ),
    Command.ASSIGN: CommandSpec(
        "Assign a ticket to someone", positionals=("ticket_id", "assignee"), entity="ticket_id"
    ),
    Command.SPRINT: CommandSpec(
        "Manage sprints",
        subcommands={
            SubCommand.LIST: CommandSpec("List sprints of the project board"),
            SubCommand.VIEW: CommandSpec(
                "View sprint details", positionals=("sprint_id",), entity="sprint_id"
            ),
            SubCommand.CREATE: CommandSpec("Create a sprint", positionals=("name",)),
            SubCommand.START: CommandSpec(
                "Start a sprint", positionals=("sprint_id",), entity="sprint_id"
            ),
            SubCommand.ADD: CommandSpec(
                "Add a ticket to a sprint",
                positionals=("ticket_id", "sprint_id"),
                entity="ticket_id",
            ),
            SubCommand.CLOSE: CommandSpec(
                "Close a sprint", positionals=("sprint_id",), entity="sprint_id"
            ),
        },
    ),
    Command.EPIC: CommandSpec(
        "Manage epics",
        subcommands={
            SubCommand.LIST: CommandSpec("List epics of the project"),
            SubCommand.VIEW: CommandSpec(
                "View epic details", positionals=("epic_id",), entity="epic_id"
            ),
            SubCommand.CREATE: CommandSpec("Create an epic", positionals=("name",)),
            SubCommand.ADD: CommandSpec(
                "Add a ticket to an epic",
                positionals=("ticket_id", "epic_id"),
                entity="ticket_id",
            ),
        },
    ),
    Command.CONFIG: CommandSpec("Set up or update your Jira credentials"),
    Command.HELP: CommandSpec("Show this help message"),
    Command.VERSION: CommandSpec("Show version information"),
}

SLOT_LABELS = {
    "ticket_id": "<ticket-id>",
    "sprint_id": "<sprint-id>",
    "epic_id": "<epic-id>",
    "name": '"name"',
    "comment": '["comment text"]',
    "status": '["status"]',
    "assignee": "[email]",
    "url": "[url]",
}


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting."""

    def error(self, message):
        raise UsageError(message)


def _configure_parser(parser: argparse.ArgumentParser, spec: CommandSpec) -> None:
    for slot in spec.positionals:
        parser.add_argument(f"slot_{slot}", nargs="?", default=None, metavar=slot.upper())

    for flag in GLOBAL_FLAGS + spec.extra_flags:
        names = [flag.long] + ([flag.short] if flag.short else [])
        if flag.takes_value:
            parser.add_argument(
                *names, dest=flag.dest, metavar=flag.metavar, choices=flag.choices
            )
        else:
            parser.add_argument(*names, dest=flag.dest, action="store_true")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse tree described by COMMAND_SCHEMA."""
    parser = _ArgumentParser(
        prog=Constants.SCRIPT_NAME, add_help=False, allow_abbrev=False
    )
    commands = parser.add_subparsers(dest="command", metavar="<command>")

    for command, spec in COMMAND_SCHEMA.items():
        command_parser = commands.add_parser(
            command.value, add_help=False, allow_abbrev=False, help=spec.help
        )
        if spec.subcommands:
            subcommands = command_parser.add_subparsers(
                dest="subcommand", metavar="<subcommand>"
            )
            for subcommand, sub_spec in spec.subcommands.items():
                sub_parser = subcommands.add_parser(
                    subcommand.value,
                    add_help=False,
                    allow_abbrev=False,
                    help=sub_spec.help,
                )
                _configure_parser(sub_parser, sub_spec)
        else:
            _configure_parser(command_parser, spec)

    return parser


def parse_command_line(
    argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None
) -> CommandContext:
    """Turn raw arguments into an immutable CommandContext."""
    if argv is None:
        argv = sys.argv[1:]
    if environ is None:
        environ = os.environ

    argv = list(argv)
    env_verbose = environ.get("JIRA_VERBOSE", "").strip().lower() in Constants.TRUE_VALUES

    if argv and argv[0] == "--version":
        return CommandContext(Command.VERSION, verbose=env_verbose)
    if "-h" in argv or "--help" in argv:
        return CommandContext(Command.HELP, verbose=env_verbose)

    if not argv or argv[0].startswith("-"):
        argv.insert(0, Command.LIST.value)
    elif argv[0] not in {command.value for command in Command}:
        raise UsageError(f"Unknown command: {argv[0]}")

    namespace = build_parser().parse_args(argv)
    command = Command(namespace.command)
    spec = COMMAND_SCHEMA[command]

    subcommand = None
    if spec.subcommands:
        if namespace.subcommand is None:
            choices = "|".join(sub.value for sub in spec.subcommands)
            raise UsageError(
                f"The {command.value} command needs a sub-command ({choices})",
                context=f"Use: {Constants.SCRIPT_NAME} {command.value} <{choices}>",
            )
        subcommand = SubCommand(namespace.subcommand)
        spec = spec.subcommands[subcommand]

    flags: Dict[str, str] = {}
    for flag in GLOBAL_FLAGS + spec.extra_flags:
        if flag.dest in CONTEXT_FLAGS:
            continue
        value = getattr(namespace, flag.dest, None)
        if flag.takes_value and value is not None:
            flags[flag.dest] = value
        elif not flag.takes_value and value:
            flags[flag.dest] = "true"

    entity_id = None
    for slot in spec.positionals:
        value = getattr(namespace, f"slot_{slot}", None)
        if value is None:
            continue
        if value.startswith("-"):
            raise UsageError(f"Unexpected option-like value: {value}")
        if slot == spec.entity:
            entity_id = value
        elif not flags.get(slot):
            flags[slot] = value

    return CommandContext(
        command=command,
        subcommand=subcommand,
        entity_id=entity_id,
        flags=MappingProxyType(flags),
        dry_run=namespace.dry_run,
        verbose=namespace.verbose or env_verbose,
        output_format=OutputFormat(namespace.format or OutputFormat.DEFAULT.value),
    )


#
# Transport
#


def extract_error_message(data: Any) -> Optional[str]:
    """Return the first structured error message of a Jira reply."""
    if not isinstance(data, dict):
        return None

    messages = data.get("errorMessages") or []
    if messages:
        return str(messages[0])

    errors = data.get("errors") or {}
    if isinstance(errors, dict) and errors:
        field_name, message = next(iter(errors.items()))
        return f"{field_name}: {message}"

    return None


class JiraRestClient:
    """Authenticated JSON calls against the Jira REST APIs."""

    def __init__(
        self,
        config: ProjectConfig,
        credentials: CredentialStore,
        dry_run: bool = False,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.credentials = credentials
        self.dry_run = dry_run
        self.session = session or requests.Session()
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        self.logger = logging.getLogger(Constants.LOGGER_NAME)
        self._authenticated = False

    def url_for(self, path: str, api: str = "core") -> str:
        base = self.config.agile_url if api == "agile" else self.config.api_url
        return f"{base}{path}"

    def _authenticate(self) -> None:
        if self._authenticated:
            return

        credentials = resolve_credentials(self.credentials, self.dry_run)
        if credentials is not None:
            self.session.auth = (credentials.username, credentials.secret)
        self._authenticated = True

    def request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict] = None,
        api: str = "core",
    ) -> Optional[Any]:
        """Send one request; returns the decoded JSON body, or None."""
        url = self.url_for(path, api)
        body = json.dumps(payload) if payload is not None else None

        self.logger.debug(f"Making API call: {method} {url}")
        if body:
            self.logger.debug(f"With data: {body}")

        self._authenticate()

        if self.dry_run:
            print(f"[DRY RUN] Would make API call: {method} {url}")
            if body:
                print(f"[DRY RUN] With data: {body}")
            print("[DRY RUN] No actual API call made.")
            return None

        try:
            response = self.session.request(
                method, url, json=payload, timeout=Constants.API_TIMEOUT
            )
        except requests.RequestException as e:
            raise TransportError(f"API call failed: {e}", context=f"{method} {url}")

        return self._parse_response(response)

    def _decode(self, response: requests.Response) -> Optional[Any]:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def _handle_response_errors(self, response: requests.Response) -> None:
        """Handle common HTTP response errors."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid credentials (username/API token)")
        elif response.status_code == 403:
            raise AuthenticationError("Access forbidden (check permissions)")
        elif not response.ok:
            message = extract_error_message(self._decode(response))
            raise APIError(
                f"API error: {message}"
                if message
                else f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
                response_text=response.text[:500] if response.text else None,
            )

    def _parse_response(self, response: requests.Response) -> Optional[Any]:
        self._handle_response_errors(response)

        if response.status_code == 204 or not response.content:
            return None

        try:
            data = response.json()
        except ValueError:
            raise APIError(
                "Malformed response body",
                status_code=response.status_code,
                response_text=response.text[:500],
            )

        # Jira sometimes reports failures inside a success-shaped reply
        if isinstance(data, dict) and ("errorMessages" in data or data.get("errors")):
            message = extract_error_message(data) or "API error without specific message"
            raise APIError(f"API error: {message}", status_code=response.status_code)

        return data


def _status_shows_login(status: str, username: str) -> bool:
    lowered = status.lower()
    if "not authenticated" in lowered or "unauthenticated" in lowered:
        return False
    return (
        "authenticated" in lowered
        and username.lower() in lowered
        and "token:" in lowered
    )


class AcliClient:
    """Runs Atlassian CLI commands, logging in first when needed."""

    def __init__(
        self,
        config: ProjectConfig,
        credentials: CredentialStore,
        dry_run: bool = False,
        binary: str = Constants.ACLI_BINARY,
    ) -> None:
        self.config = config
        self.credentials = credentials
        self.dry_run = dry_run
        self.binary = binary
        self.logger = logging.getLogger(Constants.LOGGER_NAME)
        self._session_ready = False

    def _execute(
        self,
        args: Sequence[str],
        capture: bool = True,
        input_text: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        try:
            if capture:
                return subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    input=input_text,
                    timeout=Constants.ACLI_TIMEOUT,
                )
            return subprocess.run(cmd)
        except FileNotFoundError:
            raise TransportError(
                f"The '{self.binary}' command was not found.",
                context=f"Install acli and make sure it is on your PATH: "
                f"{Constants.ACLI_INSTALL_URL}",
            )
        except subprocess.TimeoutExpired:
            raise TransportError(
                f"'{shlex.join(cmd)}' timed out after {Constants.ACLI_TIMEOUT}s"
            )

    def is_logged_in(self, username: str) -> bool:
        """Check `acli auth status` for an active session of ``username``."""
        result = self._execute(["auth", "status"])
        status = f"{result.stdout or ''}\n{result.stderr or ''}"
        self.logger.debug(f"Auth status output: {status.strip()}")
        return result.returncode == 0 and _status_shows_login(status, username)

    def ensure_session(self) -> None:
        """Log in with the stored credentials unless a matching session exists."""
        if self._session_ready:
            return

        credentials = resolve_credentials(self.credentials, self.dry_run)
        if self.dry_run:
            if credentials is not None:
                self.logger.debug(
                    f"[DRY RUN] Would verify acli session for {credentials.username}"
                )
            self._session_ready = True
            return

        if self.is_logged_in(credentials.username):
            self.logger.debug(f"Already logged in to acli as {credentials.username}")
            self._session_ready = True
            return

        self.logger.debug(f"Using site: {self.config.host}, email: {credentials.username}")
        print(
            f"Logging in to Jira at {self.config.tracker_url} as {credentials.username}",
            file=sys.stderr,
        )
        result = self._execute(
            [
                "auth",
                "login",
                "--site",
                self.config.host,
                "--email",
                credentials.username,
                "--token",
            ],
            input_text=f"{credentials.secret}\n",
        )
        if result.returncode != 0 or not self.is_logged_in(credentials.username):
            raise AuthenticationError(
                "Failed to login to acli. Please check your credentials.",
                context=(result.stderr or "").strip() or None,
            )

        print(f"Successfully logged in to acli as {credentials.username}", file=sys.stderr)
        self._session_ready = True

    def run(self, args: Sequence[str], interactive: bool = False) -> Optional[str]:
        """Run ``acli <args>`` and return its output.

        Interactive runs (editor sessions) inherit the terminal and return
        None. In dry-run mode nothing is executed and None is returned.
        """
        cmd = [self.binary, *args]
        self.ensure_session()

        if self.dry_run:
            print(f"[DRY RUN] Would run: {shlex.join(cmd)}")
            return None

        self.logger.debug(f"Executing: {shlex.join(cmd)}")
        result = self._execute(args, capture=not interactive)
        if result.returncode != 0:
            detail = ""
            if not interactive:
                detail = (result.stderr or result.stdout or "").strip()
            raise TransportError(
                f"acli {' '.join(args[:3])} failed with status {result.returncode}",
                context=detail or None,
                exit_code=result.returncode,
            )
        return None if interactive else result.stdout


#
# Output helpers
#


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def render(data: Any, output_format: OutputFormat) -> str:
    """Render a REST reply as JSON, CSV or ``key: value`` lines."""
    if data is None:
        return ""
    if output_format is OutputFormat.JSON:
        return json.dumps(data, indent=2)

    rows = data if isinstance(data, list) else [data]
    rows = [row if isinstance(row, dict) else {"value": row} for row in rows]

    if output_format is OutputFormat.CSV:
        fieldnames: List[str] = []
        for row in rows:
            fieldnames.extend(key for key in row if key not in fieldnames)
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=fieldnames, lineterminator="\n")
        writer.writeheader()
        for row in rows:
            writer.writerow({key: _scalar(value) for key, value in row.items()})
        return buffer.getvalue().rstrip("\n")

    lines = []
    for row in rows:
        for key, value in row.items():
            lines.append(f"{Colors.paint(key, Colors.BOLD)}: {_scalar(value)}")
    return "\n".join(lines)


def _emit(output: Optional[str]) -> None:
    if output:
        print(output.rstrip("\n"))


def _announce(ctx: CommandContext, message: str) -> None:
    """Print a progress line for humans; silent for dry runs and json/csv."""
    if not ctx.dry_run and ctx.output_format is OutputFormat.DEFAULT:
        print(message)


def _dry_run(message: str) -> None:
    print(f"{Colors.paint('[DRY RUN]', Colors.YELLOW)} {message}")


def _preview(text: str) -> str:
    limit = Constants.DRY_RUN_PREVIEW_LENGTH
    return text if len(text) <= limit else f"{text[:limit]}..."


def _format_args(ctx: CommandContext) -> List[str]:
    if ctx.output_format is OutputFormat.JSON:
        return ["--json"]
    if ctx.output_format is OutputFormat.CSV:
        return ["--csv"]
    return []


def _prompt(message: str) -> Optional[str]:
    """Read one answer from the terminal; None once input is closed."""
    try:
        return input(message).strip()
    except EOFError:
        return None


def _confirm(message: str) -> bool:
    answer = _prompt(f"{message} (y/n) ")
    return answer is not None and answer.lower() in ("y", "yes")


#
# Validation
#


def _usage(text: str) -> str:
    return f"Use: {Constants.SCRIPT_NAME} {text}"


def validate_email(value: str, field_name: str = "assignee") -> None:
    if not Constants.EMAIL_PATTERN.match(value):
        raise ValidationError(
            f"Invalid email format for {field_name}: {value}",
            context="Specify a valid email address",
        )


def validate_issue_key(value: str, field_name: str) -> None:
    if not Constants.ISSUE_KEY_PATTERN.match(value):
        raise ValidationError(
            f"Invalid {field_name} key format: {value}",
            context="Should be in the format PROJECT-123",
        )


def validate_date(value: str, flag: str) -> None:
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValidationError(
            f"Invalid date for {flag}: {value}", context="Use the format YYYY-MM-DD"
        )


def validate_ticket_input(
    project: str,
    summary: Optional[str],
    issue_type: str,
    assignee: Optional[str] = None,
    parent: Optional[str] = None,
) -> None:
    """Check everything `create` needs before anything leaves the machine."""
    if not project:
        raise ValidationError("Project is required", context="Specify with --project PROJECT")
    if not summary:
        raise ValidationError(
            "Summary is required", context='Specify with --summary "Your summary"'
        )

    if issue_type not in Constants.COMMON_ISSUE_TYPES:
        logging.getLogger(Constants.LOGGER_NAME).warning(
            f"Uncommon issue type: '{issue_type}'. Common types are: "
            f"{' '.join(Constants.COMMON_ISSUE_TYPES)}. "
            f"Continuing with '{issue_type}' as specified..."
        )

    if assignee:
        validate_email(assignee)
    if parent:
        validate_issue_key(parent, "parent")


def _require_ticket(ctx: CommandContext, usage: str) -> str:
    if not ctx.entity_id:
        raise ValidationError(
            f"Ticket ID is required for {ctx.command.value} command", context=_usage(usage)
        )
    return ctx.entity_id


def _require_sprint_id(value: Optional[str], usage: str) -> str:
    if not value:
        raise ValidationError("Sprint ID is required", context=_usage(usage))
    if not value.isdigit():
        raise ValidationError(
            f"Invalid sprint ID: {value}", context="Sprint IDs are numeric, e.g. 42"
        )
    return value


def _project(ctx: CommandContext, runtime: "Runtime") -> str:
    project = ctx.flag("project") or runtime.config.project_key
    if not project:
        raise ValidationError(
            "Project is required",
            context="Specify with --project PROJECT or set project in the [jira] section",
        )
    return project


def _limit(ctx: CommandContext, default: int) -> int:
    raw = ctx.flag("limit")
    if raw is None:
        return default
    try:
        limit = int(raw)
    except ValueError:
        limit = 0
    if limit < 1:
        raise ValidationError(
            f"Invalid limit: {raw}", context="Specify a positive number with --limit N"
        )
    return limit


def _sprint_dates(ctx: CommandContext) -> Dict[str, str]:
    start, end = ctx.flag("start_date"), ctx.flag("end_date")
    dates = {}
    if start:
        validate_date(start, "--start-date")
        dates["startDate"] = f"{start}T00:00:00.000Z"
    if end:
        validate_date(end, "--end-date")
        dates["endDate"] = f"{end}T23:59:59.999Z"
    if start and end and end < start:
        raise ValidationError(
            f"End date {end} is before start date {start}",
            context="Pass --end-date on or after --start-date",
        )
    return dates


#
# Command handlers
#


@dataclass
class Runtime:
    """Collaborators shared by the handlers of one invocation."""

    config: Optional[ProjectConfig]
    credentials: CredentialStore
    directory: str = "."
    acli: Optional[AcliClient] = None
    rest: Optional[JiraRestClient] = None


def setup_credentials(store: CredentialStore) -> None:
    """Prompt for a username and API token and store them."""
    username = _prompt("Enter your Jira email/username: ")
    try:
        secret = getpass.getpass("Enter your Jira API token or password: ")
    except EOFError:
        secret = ""

    store.save((username or "").strip(), secret.strip())
    print(f"Credentials saved to {store.path}")


def _ask_for_url() -> str:
    while True:
        url = _prompt(
            "Enter your Jira URL (without trailing slash, "
            "e.g., https://your-domain.atlassian.net): "
        )
        if url is None:
            raise ValidationError(
                "A Jira URL is required",
                context=_usage("init https://your-domain.atlassian.net"),
            )
        if Constants.INIT_URL_PATTERN.match(url):
            return url.rstrip("/")
        print("Invalid URL format. Please enter a valid URL (e.g., https://your-domain.atlassian.net)")


def action_init(ctx: CommandContext, runtime: Runtime) -> None:
    """Create .jira-config.ini in the current directory."""
    config_file = ProjectConfigFile(runtime.directory)
    overwrite = bool(ctx.flag("force"))

    if config_file.exists() and not overwrite:
        if ctx.dry_run:
            _dry_run(f"{config_file.path} exists; it would only be replaced after confirmation")
        elif not _confirm(f"{config_file.path} already exists. Overwrite it?"):
            print("Initialization cancelled. Existing configuration kept.")
            return
        overwrite = True

    url = ctx.flag("url")
    if url:
        if not Constants.INIT_URL_PATTERN.match(url):
            raise ValidationError(
                f"Invalid URL format: {url}",
                context="Enter a URL such as https://your-domain.atlassian.net",
            )
        url = url.rstrip("/")
    else:
        url = _ask_for_url()

    project_key = ctx.flag("project") or os.path.basename(
        os.path.abspath(runtime.directory)
    ).upper()

    if ctx.dry_run:
        _dry_run(f"Would create {config_file.path}")
        _dry_run(f"Jira URL: {url}")
        _dry_run(f"Project: {project_key}")
        return

    write_project_config(runtime.directory, url, project_key, overwrite=overwrite)
    print(f"Created project configuration file at {config_file.path}")
    print(f"Jira URL set to: {url}")

    if runtime.credentials.is_configured():
        question = "Jira credentials are already configured. Would you like to update them?"
    else:
        question = "Jira credentials are not configured. Would you like to configure them now?"
    if _confirm(question):
        setup_credentials(runtime.credentials)

    print("Project initialization complete.")
    print(f"Configuration saved to {Constants.PROJECT_CONFIG_FILE}")


def action_config(ctx: CommandContext, runtime: Runtime) -> None:
    """Set up or update the stored credentials."""
    if ctx.dry_run:
        _dry_run(f"Would prompt for credentials and save them to {runtime.credentials.path}")
        return
    setup_credentials(runtime.credentials)


def action_list(ctx: CommandContext, runtime: Runtime) -> None:
    """List tickets with a JQL query."""
    logger = logging.getLogger(Constants.LOGGER_NAME)
    project = ctx.flag("project") or runtime.config.project_key
    limit = _limit(ctx, runtime.config.default_limit)

    query = ctx.flag("query")
    if query:
        logger.debug(f"Using custom query: {query}")
    else:
        project = _project(ctx, runtime)
        query = f"project = {project}"
        logger.debug(f"Using default project query: {query}")

    scope = f"project {project}" if project else "custom query"
    if ctx.dry_run:
        _dry_run(f"Would fetch up to {limit} tickets from {scope}")
        _dry_run(f"JQL query: {query}")
    else:
        _announce(ctx, f"Fetching tickets for {scope} (limit: {limit})...")

    _emit(
        runtime.acli.run(
            ["jira", "workitem", "search", "--jql", query, "--limit", str(limit)]
            + _format_args(ctx)
        )
    )


def action_view(ctx: CommandContext, runtime: Runtime) -> None:
    """View details of a specific ticket."""
    ticket = _require_ticket(ctx, "view <ticket-id>")

    if ctx.dry_run:
        _dry_run(f"Would view details for ticket {ticket}")
    else:
        _announce(ctx, f"Fetching details for {ticket}...")

    _emit(runtime.acli.run(["jira", "workitem", "view", ticket] + _format_args(ctx)))


def action_create(ctx: CommandContext, runtime: Runtime) -> None:
    """Create a new ticket."""
    logger = logging.getLogger(Constants.LOGGER_NAME)
    config = runtime.config

    project = ctx.flag("project") or config.project_key
    summary = ctx.flag("summary")
    issue_type = ctx.flag("type") or config.default_issue_type
    priority = ctx.flag("priority") or config.default_priority
    description = ctx.flag("description")
    assignee = ctx.flag("assignee")
    parent = ctx.flag("parent")

    validate_ticket_input(project, summary, issue_type, assignee, parent)

    logger.debug(f"Summary: {summary}")
    logger.debug(f"Type: {issue_type}")
    logger.debug(f"Project: {project}")
    logger.debug(f"Priority: {priority} (informational only)")

    if ctx.dry_run:
        _dry_run(f"Would create a new ticket in project {project}")
        _dry_run(f"Summary: {summary}")
        _dry_run(f"Type: {issue_type}")
        _dry_run(f"Priority: {priority}")
        if description:
            _dry_run(f"Description: {_preview(description)}")
        if assignee:
            _dry_run(f"Assignee: {assignee}")
        if parent:
            _dry_run(f"Parent: {parent}")
    else:
        _announce(ctx, f"Creating new ticket in project {project}...")

    args = [
        "jira", "workitem", "create",
        "--project", project,
        "--type", issue_type,
        "--summary", summary,
    ]
    if description:
        args += ["--description", description]
    if assignee:
        args += ["--assignee", assignee]
    if parent:
        args += ["--parent", parent]

    output = runtime.acli.run(args)
    if output is None:
        return

    _emit(output)
    match = Constants.ISSUE_KEY_SEARCH.search(output)
    if match:
        _announce(ctx, f"Successfully created ticket: {match.group(0)}")
    else:
        _announce(ctx, "Ticket created successfully")


def action_comment(ctx: CommandContext, runtime: Runtime) -> None:
    """Add a comment to a ticket, opening an editor when no text is given."""
    ticket = _require_ticket(ctx, 'comment <ticket-id> ["comment text"]')
    text = ctx.flag("comment")

    if text:
        if ctx.dry_run:
            _dry_run(f'Would add comment to {ticket}: "{text}"')
        _emit(
            runtime.acli.run(["jira", "workitem", "comment", "--key", ticket, "--body", text])
        )
    else:
        if ctx.dry_run:
            _dry_run(f"Would open editor to add comment to {ticket}")
        runtime.acli.run(
            ["jira", "workitem", "comment", "--key", ticket, "--editor"], interactive=True
        )


def action_transition(ctx: CommandContext, runtime: Runtime) -> None:
    """Change the status of a ticket."""
    ticket = _require_ticket(ctx, 'transition <ticket-id> "status"')
    status = ctx.flag("status")
    if not status:
        raise ValidationError(
            "Status is required", context=_usage(f'transition {ticket} "In Progress"')
        )

    if ctx.dry_run:
        _dry_run(f'Would transition {ticket} to status: "{status}"')

    _emit(
        runtime.acli.run(["jira", "workitem", "transition", "--key", ticket, "--status", status])
    )


def action_assign(ctx: CommandContext, runtime: Runtime) -> None:
    """Assign a ticket to someone."""
    ticket = _require_ticket(ctx, "assign <ticket-id> --assignee <email>")
    assignee = ctx.flag("assignee")
    if not assignee:
        raise ValidationError(
            "Assignee is required",
            context=_usage(f'assign {ticket} --assignee "email@example.com"'),
        )
    validate_email(assignee)

    if ctx.dry_run:
        _dry_run(f'Would assign {ticket} to: "{assignee}"')

    _emit(
        runtime.acli.run(
            ["jira", "workitem", "assign", "--key", ticket, "--assignee", assignee]
        )
    )


def parse_board_id(output: str) -> Optional[int]:
    """Pick the first board id out of `acli jira board list --json` output."""
    try:
        data = json.loads(output)
    except ValueError:
        raise TransportError(
            "Could not parse the board list returned by acli", context=output[:200]
        )

    if isinstance(data, dict):
        data = data.get("values", data.get("boards", []))

    for board in data if isinstance(data, list) else []:
        if isinstance(board, dict) and board.get("id") is not None:
            return int(board["id"])
    return None


def resolve_board_id(ctx: CommandContext, runtime: Runtime) -> Optional[int]:
    """Board from the configuration, else the first board of the project.

    Returns None in dry-run mode when the board would have to be looked up.
    """
    if runtime.config.board_id is not None:
        return runtime.config.board_id

    project = _project(ctx, runtime)
    logging.getLogger(Constants.LOGGER_NAME).debug(f"Getting board ID for project {project}")
    output = runtime.acli.run(["jira", "board", "list", "--project", project, "--json"])
    if output is None:
        return None

    board_id = parse_board_id(output)
    if board_id is None:
        raise TransportError(
            f"No board found for project {project}",
            context="Make sure the project has at least one board, "
            "or set board in the [jira] section",
        )
    logging.getLogger(Constants.LOGGER_NAME).debug(f"Found board ID: {board_id}")
    return board_id


def action_sprint_list(ctx: CommandContext, runtime: Runtime) -> None:
    project = _project(ctx, runtime)

    if ctx.dry_run:
        _dry_run(f"Would list all sprints for project {project}")
    else:
        _announce(ctx, f"Listing sprints for project {project}")

    board_id = resolve_board_id(ctx, runtime)
    board = str(board_id) if board_id is not None else "<board>"
    _announce(ctx, f"Sprints for board ID {board}:")

    states = (
        ("active", "active sprints", []),
        ("future", "future sprints", []),
        (
            "closed",
            f"recent closed sprints (last {Constants.CLOSED_SPRINT_LIMIT})",
            ["--limit", str(Constants.CLOSED_SPRINT_LIMIT)],
        ),
    )
    for state, title, extra in states:
        output = runtime.acli.run(
            ["jira", "sprint", "list", "--board", board, "--state", state]
            + extra
            + _format_args(ctx)
        )
        if output is None:
            continue
        if output.strip():
            _announce(ctx, f"{title[0].upper()}{title[1:]}:")
            _emit(output)
        else:
            _announce(ctx, f"No {title}")
        _announce(ctx, "")


def action_sprint_view(ctx: CommandContext, runtime: Runtime) -> None:
    sprint_id = _require_sprint_id(ctx.entity_id, "sprint view <sprint-id>")
    limit = _limit(ctx, Constants.NESTED_LIST_LIMIT)

    if ctx.dry_run:
        _dry_run(f"Would view details for sprint {sprint_id}")
    else:
        _announce(ctx, f"Viewing sprint {sprint_id}")

    sprint = runtime.rest.request("GET", f"/sprint/{sprint_id}", api="agile")
    _emit(render(sprint, ctx.output_format))

    _announce(ctx, f"Issues in sprint {sprint_id}:")
    _emit(
        runtime.acli.run(
            [
                "jira", "workitem", "search",
                "--jql", f"sprint = {sprint_id}",
                "--limit", str(limit),
            ]
            + _format_args(ctx)
        )
    )


def action_sprint_create(ctx: CommandContext, runtime: Runtime) -> None:
    name = ctx.flag("name")
    if not name:
        raise ValidationError(
            "Sprint name is required",
            context=_usage(
                'sprint create "Sprint Name" [--start-date YYYY-MM-DD] '
                '[--end-date YYYY-MM-DD] [--goal "Sprint Goal"]'
            ),
        )

    payload: Dict[str, Any] = {"name": name}
    payload.update(_sprint_dates(ctx))
    goal = ctx.flag("goal")
    if goal:
        payload["goal"] = goal

    if ctx.dry_run:
        _dry_run(f"Would create sprint with name: {name}")
    else:
        _announce(ctx, f"Creating sprint: {name}")

    payload["originBoardId"] = resolve_board_id(ctx, runtime)
    _emit(render(runtime.rest.request("POST", "/sprint", payload, api="agile"), ctx.output_format))


def action_sprint_start(ctx: CommandContext, runtime: Runtime) -> None:
    sprint_id = _require_sprint_id(ctx.entity_id, "sprint start <sprint-id>")
    payload: Dict[str, Any] = {"state": "active"}
    payload.update(_sprint_dates(ctx))

    if ctx.dry_run:
        _dry_run(f"Would start sprint {sprint_id}")
    else:
        _announce(ctx, f"Starting sprint {sprint_id}")

    _emit(
        render(
            runtime.rest.request("POST", f"/sprint/{sprint_id}", payload, api="agile"),
            ctx.output_format,
        )
    )


def action_sprint_add(ctx: CommandContext, runtime: Runtime) -> None:
    usage = "sprint add <ticket-id> <sprint-id>"
    if not ctx.entity_id or not ctx.flag("sprint_id"):
        raise ValidationError(
            "Both ticket ID and sprint ID are required", context=_usage(usage)
        )
    ticket = ctx.entity_id
    sprint_id = _require_sprint_id(ctx.flag("sprint_id"), usage)

    if ctx.dry_run:
        _dry_run(f"Would add ticket {ticket} to sprint {sprint_id}")
    else:
        _announce(ctx, f"Adding ticket {ticket} to sprint {sprint_id}")

    runtime.rest.request(
        "POST", f"/sprint/{sprint_id}/issue", {"issues": [ticket]}, api="agile"
    )


def action_sprint_close(ctx: CommandContext, runtime: Runtime) -> None:
    sprint_id = _require_sprint_id(ctx.entity_id, "sprint close <sprint-id>")

    if ctx.dry_run:
        _dry_run(f"Would close sprint {sprint_id}")
    else:
        _announce(ctx, f"Closing sprint {sprint_id}")

    _emit(
        render(
            runtime.rest.request(
                "POST", f"/sprint/{sprint_id}", {"state": "closed"}, api="agile"
            ),
            ctx.output_format,
        )
    )


def action_epic_list(ctx: CommandContext, runtime: Runtime) -> None:
    project = _project(ctx, runtime)
    limit = _limit(ctx, Constants.NESTED_LIST_LIMIT)

    if ctx.dry_run:
        _dry_run(f"Would list all epics for project {project}")
    else:
        _announce(ctx, f"Listing epics for project {project}")

    _emit(
        runtime.acli.run(
            [
                "jira", "workitem", "search",
                "--jql", f"project = {project} AND issuetype = Epic",
                "--limit", str(limit),
            ]
            + _format_args(ctx)
        )
    )


def action_epic_view(ctx: CommandContext, runtime: Runtime) -> None:
    epic = ctx.entity_id
    if not epic:
        raise ValidationError("Epic ID is required", context=_usage("epic view <epic-id>"))
    validate_issue_key(epic, "epic")
    limit = _limit(ctx, Constants.NESTED_LIST_LIMIT)

    if ctx.dry_run:
        _dry_run(f"Would view details for epic {epic}")
    else:
        _announce(ctx, "Epic details:")

    _emit(runtime.acli.run(["jira", "workitem", "view", epic] + _format_args(ctx)))

    _announce(ctx, f"Issues in epic {epic}:")
    _emit(
        runtime.acli.run(
            [
                "jira", "workitem", "search",
                "--jql", f'"Epic Link" = {epic}',
                "--limit", str(limit),
            ]
            + _format_args(ctx)
        )
    )


def action_epic_create(ctx: CommandContext, runtime: Runtime) -> None:
    name = ctx.flag("name")
    if not name:
        raise ValidationError(
            "Epic name is required",
            context=_usage('epic create "Epic Name" [--description "Description"]'),
        )
    project = _project(ctx, runtime)
    description = ctx.flag("description")

    if ctx.dry_run:
        _dry_run(f"Would create epic with name: {name}")
        if description:
            _dry_run(f"Description: {_preview(description)}")
    else:
        _announce(ctx, f"Creating epic: {name}")

    args = [
        "jira", "workitem", "create",
        "--project", project,
        "--type", "Epic",
        "--summary", name,
    ]
    if description:
        args += ["--description", description]
    _emit(runtime.acli.run(args))


def action_epic_add(ctx: CommandContext, runtime: Runtime) -> None:
    usage = "epic add <ticket-id> <epic-id>"
    epic = ctx.flag("epic_id")
    if not ctx.entity_id or not epic:
        raise ValidationError("Both ticket ID and epic ID are required", context=_usage(usage))
    validate_issue_key(epic, "epic")
    ticket = ctx.entity_id
    link_field = runtime.config.epic_link_field

    logging.getLogger(Constants.LOGGER_NAME).debug(f"Epic link field: {link_field}")
    if ctx.dry_run:
        _dry_run(f"Would add ticket {ticket} to epic {epic}")
    else:
        _announce(ctx, f"Adding ticket {ticket} to epic {epic}")

    runtime.rest.request("PUT", f"/issue/{ticket}", {"fields": {link_field: epic}})


SPRINT_HANDLERS: Dict[SubCommand, Callable[[CommandContext, Runtime], None]] = {
    SubCommand.LIST: action_sprint_list,
    SubCommand.VIEW: action_sprint_view,
    SubCommand.CREATE: action_sprint_create,
    SubCommand.START: action_sprint_start,
    SubCommand.ADD: action_sprint_add,
    SubCommand.CLOSE: action_sprint_close,
}

EPIC_HANDLERS: Dict[SubCommand, Callable[[CommandContext, Runtime], None]] = {
    SubCommand.LIST: action_epic_list,
    SubCommand.VIEW: action_epic_view,
    SubCommand.CREATE: action_epic_create,
    SubCommand.ADD: action_epic_add,
}


def action_sprint(ctx: CommandContext, runtime: Runtime) -> None:
    logging.getLogger(Constants.LOGGER_NAME).debug(
        f"Running sprint command: {ctx.subcommand.value}"
    )
    SPRINT_HANDLERS[ctx.subcommand](ctx, runtime)


def action_epic(ctx: CommandContext, runtime: Runtime) -> None:
    logging.getLogger(Constants.LOGGER_NAME).debug(
        f"Running epic command: {ctx.subcommand.value}"
    )
    EPIC_HANDLERS[ctx.subcommand](ctx, runtime)


def _command_usage(command: Command, spec: CommandSpec) -> str:
    if spec.subcommands:
        return f"{command.value} <{'|'.join(sub.value for sub in spec.subcommands)}>"
    return " ".join([command.value] + [SLOT_LABELS[slot] for slot in spec.positionals])


def show_help() -> None:
    """Show help information."""
    name = Constants.SCRIPT_NAME
    print(f"{name} - JIRA ticket manager")
    print(f"Version: {__version__}")
    print("")
    print("Usage:")
    print(f"  {name} [command] [options]")
    print("")
    print("Commands:")
    for command, spec in COMMAND_SCHEMA.items():
        print(f"  {_command_usage(command, spec):<32} {spec.help}")
    print("")
    print("Options:")
    for flag in GLOBAL_FLAGS + (FORCE_FLAG,):
        names = f"{flag.short}, {flag.long}" if flag.short else f"    {flag.long}"
        if flag.metavar:
            names = f"{names} {flag.metavar}"
        print(f"  {names:<32} {flag.help}")
    print("")
    print("Authentication:")
    print("  acli is logged in automatically using credentials stored in:")
    print(f"  {Constants.CREDENTIALS_FILE}")
    print(f"  Run '{name} config' to set up or update your credentials.")
    print("")
    print("Sprint Command Examples:")
    print(f"  {name} sprint list               # List all sprints")
    print(f"  {name} sprint view 1             # View sprint details")
    print(f'  {name} sprint create "Sprint 3" --start-date 2025-06-01 --end-date 2025-06-15 --goal "Complete feature X"')
    print(f"  {name} sprint start 3            # Start sprint 3")
    print(f"  {name} sprint add KAN-42 3       # Add ticket to sprint 3")
    print(f"  {name} sprint close 3            # Close sprint 3")
    print("")
    print("Epic Command Examples:")
    print(f"  {name} epic list                 # List all epics")
    print(f"  {name} epic view KAN-100         # View epic details")
    print(f'  {name} epic create "User Auth"   # Create a new epic')
    print(f"  {name} epic add KAN-42 KAN-100   # Add ticket to epic")
    print("")
    print("Basic Command Examples:")
    print(f"  {name} init                        # Initialize project Jira configuration")
    print(f"  {name} list                        # List {Constants.DEFAULT_LIMIT} most recent tickets")
    print(f"  {name} list --limit 20             # List 20 tickets")
    print(f'  {name} list --query "status = Done" # List tickets with status Done')
    print(f"  {name} view KAN-42                 # View details of KAN-42")
    print(f'  {name} create --summary "Fix bug"  # Create a new task')
    print(f'  {name} comment KAN-42 "Fixed bug"  # Add comment to KAN-42')
    print(f'  {name} transition KAN-42 "Done"    # Mark KAN-42 as Done')
    print(f"  {name} assign KAN-42 user@mail.com # Assign KAN-42")
    print(f'  {name} create --summary "Fix bug" --dry-run # Show what would happen')
    print(f"  {name} list --format json          # Output in JSON format")
    print(f"  {name} list --verbose              # Show login and API details")
    print("")
    print("Configuration:")
    print(f"  Project configuration is stored in {Constants.PROJECT_CONFIG_FILE} in each project directory")
    print("  Environment overrides: JIRA_URL, JIRA_PROJECT, JIRA_API_VERSION,")
    print("  JIRA_EPIC_LINK_FIELD, JIRA_BOARD_ID, JIRA_VERBOSE, JIRA_CREDENTIALS_FILE")


def action_help(ctx: CommandContext, runtime: Runtime) -> None:
    show_help()


def action_version(ctx: CommandContext, runtime: Runtime) -> None:
    print(f"{Constants.SCRIPT_NAME} {__version__}")


HANDLERS: Dict[Command, Callable[[CommandContext, Runtime], None]] = {
    Command.INIT: action_init,
    Command.LIST: action_list,
    Command.VIEW: action_view,
    Command.CREATE: action_create,
    Command.COMMENT: action_comment,
    Command.TRANSITION: action_transition,
    Command.ASSIGN: action_assign,
    Command.SPRINT: action_sprint,
    Command.EPIC: action_epic,
    Command.CONFIG: action_config,
    Command.HELP: action_help,
    Command.VERSION: action_version,
}


def report_error(error: JiraError, command: Optional[Command] = None) -> None:
    """Print a fatal error with its context and a pointer to --help."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    marker = Colors.paint("[ERROR]", Colors.RED, sys.stderr)
    print(f"{marker} {timestamp}: {error}", file=sys.stderr)
    if error.context:
        print(f"  Context: {error.context}", file=sys.stderr)
    if command not in NO_HINT_COMMANDS:
        print(
            f"  Hint: Run '{Constants.SCRIPT_NAME} --help' for usage information",
            file=sys.stderr,
        )


def run(
    argv: Optional[Sequence[str]] = None,
    directory: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> int:
    """Run one invocation and return its exit code instead of exiting."""
    if environ is None:
        environ = os.environ
    if directory is None:
        directory = os.getcwd()

    command = None
    try:
        ctx = parse_command_line(argv, environ)
        command = ctx.command

        logger = setup_logging(LogLevel.DEBUG if ctx.verbose else LogLevel.WARNING)
        logger.info(f"Starting {Constants.SCRIPT_NAME} with command: {command.value}")
        if ctx.subcommand:
            logger.debug(f"Sub-command: {ctx.subcommand.value}")
        if ctx.entity_id:
            logger.debug(f"Entity ID: {ctx.entity_id}")
        logger.debug(f"Dry run: {ctx.dry_run}")

        config = None
        if command not in NO_CONFIG_COMMANDS:
            config = load_project_config(directory, environ)
            logger.debug(f"Using site: {config.host}")
            logger.debug(f"API URL: {config.api_url}")
            logger.debug(f"Project: {ctx.flag('project') or config.project_key}")

        credentials = CredentialStore(environ.get("JIRA_CREDENTIALS_FILE"))
        runtime = Runtime(config=config, credentials=credentials, directory=directory)
        if config is not None:
            runtime.acli = AcliClient(config, credentials, dry_run=ctx.dry_run)
            runtime.rest = JiraRestClient(config, credentials, dry_run=ctx.dry_run)

        HANDLERS[command](ctx, runtime)
        return 0
    except JiraError as e:
        report_error(e, command)
        return e.exit_code


def main() -> None:
    logger = logging.getLogger(Constants.LOGGER_NAME)

    try:
        exit_code = run()
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        print("\nOperation cancelled.")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        print(f"\nError: {e}")
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
