import pytest

from deskentry.core.exec_expander import expand_exec


class TestExpandExec:
    def test_plain_command(self):
        assert expand_exec("gedit --new-window") == ["gedit", "--new-window"]

    def test_field_codes_without_context_are_dropped(self):
        assert expand_exec("env FOO=bar myapp %f --flag %U") == [
            "env",
            "FOO=bar",
            "myapp",
            "--flag",
        ]

    def test_leading_assignment_is_rejected(self, logger):
        assert expand_exec("FOO=bar myapp", logger=logger) is None

    @pytest.mark.parametrize("value", [None, "", "   ", "%U %f"])
    def test_nothing_to_launch(self, value):
        assert expand_exec(value) is None

    def test_quoting(self):
        assert expand_exec('sh -c "echo hello world" \'a b\'') == [
            "sh",
            "-c",
            "echo hello world",
            "a b",
        ]

    def test_unbalanced_quote(self, logger):
        assert expand_exec('app "unterminated', logger=logger) is None
        logger.warning.assert_called_once()

    def test_single_uri_codes_take_first(self):
        uris = ["/tmp/a.txt", "/tmp/b.txt"]
        assert expand_exec("app %f", uris=uris) == ["app", "/tmp/a.txt"]
        assert expand_exec("app %u", uris=uris) == ["app", "/tmp/a.txt"]

    def test_list_codes_take_all(self):
        uris = ["file:///a", "file:///b"]
        assert expand_exec("app %U --end", uris=uris) == [
            "app",
            "file:///a",
            "file:///b",
            "--end",
        ]

    def test_icon_name_location(self):
        argv = expand_exec(
            "app %i %c %k",
            icon="org.example.App",
            name="Example App",
            location="/usr/share/applications/org.example.App.desktop",
        )
        assert argv == [
            "app",
            "--icon",
            "org.example.App",
            "Example App",
            "/usr/share/applications/org.example.App.desktop",
        ]

    def test_deprecated_codes_are_dropped(self, logger):
        assert expand_exec("app %d %D %n %N %v %m", logger=logger) == ["app"]
        assert logger.debug.call_count == 6

    def test_assignment_after_program_is_kept(self):
        assert expand_exec("app --opt=1") == ["app", "--opt=1"]
