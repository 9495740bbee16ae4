"""Tests for the template preprocessor."""

from unittest.mock import patch

from htp_client.preprocessor import (
    ShellContext,
    execute_commands,
    expand_variables,
    is_comment,
    preprocess,
)


class FakeShell(ShellContext):
    """Records commands instead of running them."""

    def __init__(self, outputs=None):
        super().__init__(shell="/bin/sh")
        self.outputs = outputs or {}
        self.commands = []

    def run(self, command):
        self.commands.append(command)
        return self.outputs.get(command, "")


class TestComments:
    """Tests for comment line removal."""

    def test_hash_and_slash_comments_dropped(self):
        text = "# comment\nGET /a HTTP/1.1\n  // indented comment\nHost: x"
        assert preprocess(text, env={}) == "GET /a HTTP/1.1\nHost: x"

    def test_is_comment(self):
        assert is_comment("# note")
        assert is_comment("   // note")
        assert not is_comment("GET / HTTP/1.1")
        assert not is_comment("X-Tag: #1")

    def test_commented_command_is_not_executed(self):
        shell = FakeShell()
        preprocess("# $(rm -rf /tmp/x)\nGET / HTTP/1.1", env={}, shell=shell)
        assert shell.commands == []


class TestExpandVariables:
    """Tests for ${VAR} and $VAR expansion."""

    def test_braced_variable(self):
        env = {"API_TOKEN": "abc123"}
        line = "Authorization: Bearer ${API_TOKEN}"
        assert expand_variables(line, env) == "Authorization: Bearer abc123"

    def test_bare_variable(self):
        assert expand_variables("X-Key: $API_KEY!", {"API_KEY": "k1"}) == "X-Key: k1!"

    def test_unset_variables_expand_to_empty(self):
        assert expand_variables("a=${MISSING} b=$MISSING", {}) == "a= b="

    def test_unterminated_brace_left_untouched(self):
        line = "X: $HOST ${BROKEN and $MORE"
        assert expand_variables(line, {"HOST": "h", "MORE": "m"}) == "X: h ${BROKEN and $MORE"

    def test_lone_dollar_and_command_untouched(self):
        line = "Price: 5$ $(date)"
        assert expand_variables(line, {}) == "Price: 5$ $(date)"

    def test_substituted_value_not_expanded_again(self):
        env = {"A": "$B", "B": "nope"}
        assert expand_variables("${A}", env) == "$B"

    def test_multiple_on_one_line(self):
        env = {"HOST": "example.com", "PORT": "8080"}
        assert expand_variables("https://${HOST}:$PORT/x", env) == "https://example.com:8080/x"


class TestExecuteCommands:
    """Tests for $(command) substitution."""

    def test_command_output_substituted(self):
        shell = FakeShell({"uuidgen": "1234"})
        assert execute_commands("X-Request-ID: $(uuidgen)", shell) == "X-Request-ID: 1234"
        assert shell.commands == ["uuidgen"]

    def test_nested_parentheses(self):
        shell = FakeShell({"echo (a)": "(a)"})
        assert execute_commands("v=$(echo (a)) end", shell) == "v=(a) end"
        assert shell.commands == ["echo (a)"]

    def test_unbalanced_left_untouched(self):
        shell = FakeShell()
        assert execute_commands("v=$(echo oops", shell) == "v=$(echo oops"
        assert shell.commands == []

    def test_command_built_from_variable(self):
        shell = FakeShell({"echo hi": "hi"})
        out = preprocess("X: $(echo ${WORD})", env={"WORD": "hi"}, shell=shell)
        assert out == "X: hi"


class TestShellContext:
    """Tests for running commands through a real shell."""

    def test_runs_command_and_strips_trailing_newline(self):
        shell = ShellContext(shell="/bin/sh")
        assert shell.run("printf 'hello\\n\\n'") == "hello"

    def test_failing_command_gives_error_marker(self):
        shell = ShellContext(shell="/bin/sh")
        result = shell.run("exit 3")
        assert result.startswith("[error:")
        assert "exit status 3" in result

    def test_missing_shell_gives_error_marker(self):
        shell = ShellContext(shell="/nonexistent/shell")
        assert shell.run("echo hi").startswith("[error:")

    def test_explicit_cwd_and_env(self, tmp_path):
        shell = ShellContext(shell="/bin/sh", cwd=str(tmp_path), env={"GREETING": "hey"})
        assert shell.run("pwd") == str(tmp_path)
        assert shell.run("echo $GREETING") == "hey"

    def test_defaults_to_user_shell(self):
        with patch.dict("os.environ", {"SHELL": "/bin/bash"}):
            assert ShellContext().shell == "/bin/bash"

    def test_falls_back_to_sh(self):
        with patch.dict("os.environ", {}, clear=True):
            assert ShellContext().shell == "/bin/sh"


class TestPreprocess:
    """Tests for the full preprocessing pass."""

    def test_env_substitution_scenario(self):
        out = preprocess(
            "Authorization: Bearer ${API_TOKEN}", env={"API_TOKEN": "abc123"}
        )
        assert out == "Authorization: Bearer abc123"

    def test_uses_process_environment_by_default(self):
        with patch.dict("os.environ", {"HTP_TEST_VAR": "from-env"}):
            assert preprocess("X: ${HTP_TEST_VAR}") == "X: from-env"

    def test_idempotent_without_markers(self):
        text = "GET https://example.com/ HTTP/1.1\nHost: example.com\n\nbody"
        once = preprocess(text, env={})
        assert preprocess(once, env={}) == once
        assert once == text

    def test_blank_lines_preserved(self):
        text = "POST / HTTP/1.1\nHost: x\n\n{\n}"
        assert preprocess(text, env={}) == text
