import pytest

from livewatch.components.templates import (
    TemplateValues,
    build_launch,
    render,
    substitute,
    tokenize,
)
from livewatch.core.errors import ConfigError
from tests.conftest import make_channel


class TestTokenize:
    def test_quoted_segment_is_one_token(self):
        assert tokenize('"a b" c') == ["a b", "c"]

    def test_collapses_whitespace(self):
        assert tokenize("  mpv \t --fs   - ") == ["mpv", "--fs", "-"]

    def test_quotes_inside_word_are_stripped(self):
        assert tokenize('--title="two words" x') == ["--title=two words", "x"]

    def test_adjacent_quoted_segments_join(self):
        assert tokenize('a"b c"d') == ["ab cd"]

    def test_empty_quotes_give_empty_token(self):
        assert tokenize('cmd ""') == ["cmd", ""]

    def test_empty_template(self):
        assert tokenize("") == []
        assert tokenize("   ") == []

    def test_unterminated_quote(self):
        with pytest.raises(ConfigError):
            tokenize('mpv "unterminated')


class TestSubstitute:
    def test_replaces_placeholders(self):
        assert render("x $title y", TemplateValues(title="Hi")) == ["x", "Hi", "y"]

    def test_token_without_placeholders_unchanged(self):
        values = TemplateValues(title="T", broadcaster_username="u")
        assert substitute("--no-cache", values) == "--no-cache"

    def test_unknown_placeholder_passes_through(self):
        assert substitute("$quality", TemplateValues(title="T")) == "$quality"

    def test_several_placeholders_in_one_token(self):
        values = TemplateValues(broadcaster_username="abc", broadcaster_displayname="ABC")
        assert substitute("$broadcaster_username/$broadcaster_displayname", values) == "abc/ABC"

    def test_inserted_values_are_not_substituted_again(self):
        values = TemplateValues(title="$oauth_token", oauth_token="secret")
        assert substitute("$title", values) == "$oauth_token"

    def test_quoted_value_keeps_quotes_and_spaces(self):
        values = TemplateValues(title='say "hi" to $5')
        assert render('mpv --title="$title" -', values) == ["mpv", '--title=say "hi" to $5', "-"]


class TestBuildLaunch:
    def test_values_for_channel(self):
        channel = make_channel("somechannel", display_name="SomeChannel", title="Speedruns")
        values = TemplateValues.for_channel(channel, "oauth-xyz")
        request = build_launch(
            "streamlink --twitch-api-header Authorization=OAuth$oauth_token --stdout "
            "twitch.tv/$broadcaster_username best",
            'mpv "--title=$broadcaster_displayname: $title" -',
            values,
        )
        assert request.stream == [
            "streamlink",
            "--twitch-api-header",
            "Authorization=OAuthoauth-xyz",
            "--stdout",
            "twitch.tv/somechannel",
            "best",
        ]
        assert request.player == ["mpv", "--title=SomeChannel: Speedruns", "-"]

    def test_empty_player_means_no_player(self):
        request = build_launch("cmd $broadcaster_username", "   ", TemplateValues(broadcaster_username="a"))
        assert request.stream == ["cmd", "a"]
        assert request.player is None

    @pytest.mark.parametrize("template", ["", "   ", "\n"])
    def test_empty_stream_command_rejected(self, template):
        with pytest.raises(ConfigError):
            build_launch(template, "mpv -", TemplateValues())

    def test_stream_command_without_executable_rejected(self):
        with pytest.raises(ConfigError):
            build_launch('"" best', "", TemplateValues())

    def test_unterminated_quote_in_player_rejected(self):
        with pytest.raises(ConfigError):
            build_launch("streamlink", 'mpv "-', TemplateValues())
