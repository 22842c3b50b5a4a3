import sys

import pytest

from spaced import clipboard as clipboard_module
from spaced.clipboard import ClipboardError, CommandClipboard, default_clipboard_command


def copy_to(path):
    script = f"import sys; open({str(path)!r}, 'w').write(sys.stdin.read())"
    return CommandClipboard([sys.executable, "-c", script])


def test_payload_reaches_command_stdin(tmp_path):
    target = tmp_path / "clipboard.txt"
    channel = copy_to(target).open()

    channel.write("https://eok.vin/abc123")
    channel.close()
    channel.wait()

    assert target.read_text() == "https://eok.vin/abc123"


def test_failing_command_raises_on_wait():
    channel = CommandClipboard([sys.executable, "-c", "import sys; sys.stdin.read(); sys.exit(3)"]).open()
    channel.write("https://eok.vin/abc123")
    channel.close()

    with pytest.raises(ClipboardError, match="status 3"):
        channel.wait()


def test_missing_command_raises_on_open(tmp_path):
    sink = CommandClipboard([str(tmp_path / "no-such-clipboard-tool")])

    with pytest.raises(ClipboardError, match="unable to start"):
        sink.open()


def test_write_after_close_raises(tmp_path):
    channel = copy_to(tmp_path / "clipboard.txt").open()
    channel.close()

    with pytest.raises(ClipboardError):
        channel.write("late")
    channel.wait()


def test_empty_command_is_rejected():
    with pytest.raises(ValueError):
        CommandClipboard([])


@pytest.mark.parametrize(
    "platform, expected",
    [("darwin", ("pbcopy",)), ("win32", ("clip",))],
)
def test_default_command_by_platform(monkeypatch, platform, expected):
    monkeypatch.setattr(clipboard_module.sys, "platform", platform)

    assert default_clipboard_command() == expected


def test_default_command_prefers_xclip_on_linux(monkeypatch):
    monkeypatch.setattr(clipboard_module.sys, "platform", "linux")
    monkeypatch.setattr(clipboard_module.shutil, "which", lambda name: f"/usr/bin/{name}")

    assert default_clipboard_command() == ("xclip", "-selection", "clipboard")


def test_default_command_falls_back_to_xsel(monkeypatch):
    monkeypatch.setattr(clipboard_module.sys, "platform", "linux")
    monkeypatch.setattr(clipboard_module.shutil, "which", lambda name: "/usr/bin/xsel" if name == "xsel" else None)

    assert default_clipboard_command() == ("xsel", "--clipboard", "--input")
