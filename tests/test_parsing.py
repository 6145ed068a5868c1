import pytest

from jira_wrap import (
    Command,
    OutputFormat,
    SubCommand,
    UsageError,
    parse_command_line,
)


def parse(*argv, environ=None):
    return parse_command_line(list(argv), environ or {})


class TestDefaults:
    def test_no_arguments_lists(self):
        ctx = parse()

        assert ctx.command is Command.LIST
        assert ctx.subcommand is None
        assert ctx.entity_id is None
        assert dict(ctx.flags) == {}
        assert not ctx.dry_run
        assert not ctx.verbose
        assert ctx.output_format is OutputFormat.DEFAULT

    def test_leading_flag_lists(self):
        ctx = parse("--limit", "5", "--format", "json")

        assert ctx.command is Command.LIST
        assert ctx.flags["limit"] == "5"
        assert ctx.output_format is OutputFormat.JSON

    @pytest.mark.parametrize("argv", [["-h"], ["--help"], ["create", "--help"], ["help"]])
    def test_help(self, argv):
        assert parse(*argv).command is Command.HELP

    @pytest.mark.parametrize("argv", [["--version"], ["version"]])
    def test_version(self, argv):
        assert parse(*argv).command is Command.VERSION


class TestFlags:
    def test_short_and_long_forms(self):
        ctx = parse(
            "create", "-s", "Fix bug", "-d", "Details", "-t", "Bug",
            "-a", "dev@example.com", "-r", "High", "-p", "OPS", "-l", "3", "-q", "x = y",
        )

        assert dict(ctx.flags) == {
            "summary": "Fix bug",
            "description": "Details",
            "type": "Bug",
            "assignee": "dev@example.com",
            "priority": "High",
            "project": "OPS",
            "limit": "3",
            "query": "x = y",
        }

    def test_boolean_flags(self):
        ctx = parse("list", "--dry-run", "-v")

        assert ctx.dry_run
        assert ctx.verbose
        assert "dry_run" not in ctx.flags

    def test_hyphenated_flags(self):
        ctx = parse("sprint", "create", "S1", "--start-date", "2025-06-01", "--end-date", "2025-06-15", "--goal", "Ship")

        assert ctx.flags["start_date"] == "2025-06-01"
        assert ctx.flags["end_date"] == "2025-06-15"
        assert ctx.flags["goal"] == "Ship"

    def test_verbose_from_environment(self):
        assert parse("list", environ={"JIRA_VERBOSE": "yes"}).verbose
        assert not parse("list", environ={"JIRA_VERBOSE": "0"}).verbose

    def test_unknown_flag(self):
        with pytest.raises(UsageError):
            parse("list", "--bogus")

    def test_abbreviated_flag_rejected(self):
        with pytest.raises(UsageError):
            parse("list", "--dry")

    def test_flag_missing_value(self):
        with pytest.raises(UsageError):
            parse("list", "--limit")

    def test_invalid_format(self):
        with pytest.raises(UsageError):
            parse("list", "--format", "xml")

    def test_force_only_for_init(self):
        assert parse("init", "--force").flags["force"] == "true"
        with pytest.raises(UsageError):
            parse("list", "--force")


class TestPositionals:
    def test_view_entity(self):
        ctx = parse("view", "KAN-42")

        assert ctx.command is Command.VIEW
        assert ctx.entity_id == "KAN-42"

    def test_flag_is_not_consumed_as_entity(self):
        ctx = parse("view", "--dry-run")

        assert ctx.entity_id is None
        assert ctx.dry_run

    def test_comment_text(self):
        ctx = parse("comment", "KAN-42", "Fixed in main")

        assert ctx.entity_id == "KAN-42"
        assert ctx.flags["comment"] == "Fixed in main"

    def test_transition_positional_status(self):
        assert parse("transition", "KAN-1", "Done").flags["status"] == "Done"

    def test_explicit_flag_wins_over_positional(self):
        ctx = parse("transition", "KAN-1", "Done", "--status", "In Progress")

        assert ctx.flags["status"] == "In Progress"

    def test_assign_positional_assignee(self):
        ctx = parse("assign", "KAN-1", "dev@example.com")

        assert ctx.flags["assignee"] == "dev@example.com"

    def test_init_url(self):
        ctx = parse("init", "https://jira.example.com")

        assert ctx.entity_id is None
        assert ctx.flags["url"] == "https://jira.example.com"

    def test_extra_positional_rejected(self):
        with pytest.raises(UsageError):
            parse("view", "KAN-1", "KAN-2")

    def test_unknown_command(self):
        with pytest.raises(UsageError, match="Unknown command: frobnicate"):
            parse("frobnicate")


class TestCompoundCommands:
    def test_sprint_add(self):
        ctx = parse("sprint", "add", "KAN-42", "3")

        assert ctx.command is Command.SPRINT
        assert ctx.subcommand is SubCommand.ADD
        assert ctx.entity_id == "KAN-42"
        assert ctx.flags["sprint_id"] == "3"

    def test_sprint_view(self):
        ctx = parse("sprint", "view", "12", "--format", "csv")

        assert ctx.subcommand is SubCommand.VIEW
        assert ctx.entity_id == "12"
        assert ctx.output_format is OutputFormat.CSV

    def test_sprint_create_name(self):
        ctx = parse("sprint", "create", "Sprint 3")

        assert ctx.entity_id is None
        assert ctx.flags["name"] == "Sprint 3"

    def test_epic_add(self):
        ctx = parse("epic", "add", "KAN-42", "KAN-100")

        assert ctx.subcommand is SubCommand.ADD
        assert ctx.entity_id == "KAN-42"
        assert ctx.flags["epic_id"] == "KAN-100"

    @pytest.mark.parametrize("command", ["sprint", "epic"])
    def test_missing_subcommand(self, command):
        with pytest.raises(UsageError, match="sub-command"):
            parse(command)

    def test_invalid_subcommand(self):
        with pytest.raises(UsageError):
            parse("sprint", "explode")

    def test_epic_has_no_start(self):
        with pytest.raises(UsageError):
            parse("epic", "start", "KAN-1")


class TestImmutability:
    def test_context_is_frozen(self):
        ctx = parse("view", "KAN-1")

        with pytest.raises(AttributeError):
            ctx.entity_id = "KAN-2"

    def test_flags_are_read_only(self):
        ctx = parse("list", "--limit", "3")

        with pytest.raises(TypeError):
            ctx.flags["limit"] = "4"
