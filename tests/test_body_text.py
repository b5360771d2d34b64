"""Tests for the HTML to plain-text alternative."""

import os
import sys
from pathlib import Path

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mail_scheduler.utils.body_text import html_to_text


def test_blocks_become_lines():
    text = html_to_text("<h1>Invoice</h1><p>Hello&nbsp;there,</p><p>Your total is &pound;10.</p>")
    assert text.splitlines()[0] == "Invoice"
    assert "Hello there," in text
    assert "Your total is £10." in text


def test_scripts_and_styles_are_dropped():
    text = html_to_text("<style>p{color:red}</style><script>alert(1)</script><p>Visible</p>")
    assert text == "Visible"


def test_links_keep_their_target():
    text = html_to_text('<p>See <a href="https://example.com/doc">the doc</a></p>')
    assert text == "See the doc [https://example.com/doc]"


def test_empty_input():
    assert html_to_text("") == ""
    assert html_to_text("   ") == ""
