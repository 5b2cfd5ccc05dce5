import click

from interface.editor import UNCHANGED, edit_notes


def test_unsaved_editor_keeps_notes(monkeypatch):
    monkeypatch.setattr(click, "edit", lambda *args, **kwargs: None)
    assert edit_notes("old") is UNCHANGED


def test_same_text_is_unchanged(monkeypatch):
    monkeypatch.setattr(click, "edit", lambda text, **kwargs: text + "\n")
    assert edit_notes("old") is UNCHANGED


def test_new_text_is_returned_without_trailing_newline(monkeypatch):
    seen = {}

    def fake_edit(text, **kwargs):
        seen.update(kwargs, text=text)
        return "new notes\n"

    monkeypatch.setattr(click, "edit", fake_edit)

    assert edit_notes(None, editor="vim") == "new notes"
    assert seen["text"] == ""
    assert seen["editor"] == "vim"
    assert seen["extension"] == ".md"
    assert seen["require_save"] is True