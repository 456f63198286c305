from nomadops.cli.common.output import out


def test_messages_are_printed_literally(capsys):
    out.error("[Errno 2] No such file")
    out.warn("[bold]not bold[/bold]")

    printed = capsys.readouterr().out
    assert "✗ [Errno 2] No such file" in printed
    assert "⚠ [bold]not bold[/bold]" in printed


def test_prompts_are_prefixed_with_the_tool_name():
    assert out._q("Continue?") == "[nomadops] Continue?"
