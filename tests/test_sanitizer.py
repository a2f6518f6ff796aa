import pytest

from secureblog.sanitizer import InputSanitizer, slugify, strip_tags


@pytest.fixture
def sanitizer():
    return InputSanitizer()


@pytest.mark.parametrize("text,expected", [
    ("Hello World!", "hello-world"),
    ("  --Foo__Bar--  ", "foo-bar"),
    ("Ünïcode & Symbols 2024", "n-code-symbols-2024"),
    ("!!!", ""),
])
def test_slugify(text, expected):
    assert slugify(text) == expected


def test_slug_kind_matches_slugify(sanitizer):
    assert sanitizer.sanitize("Hello World!", "slug") == "hello-world"


def test_string_strips_all_markup_and_nul(sanitizer):
    value = "<b>Hi</b> there<script>alert(1)</script>\0"
    assert sanitizer.sanitize(value) == "Hi there"


def test_none_becomes_empty_string(sanitizer):
    assert sanitizer.sanitize(None) == ""


def test_lists_are_sanitized_per_element(sanitizer):
    assert sanitizer.sanitize(["<b>a</b>", " b "]) == ["a", "b"]


def test_html_keeps_allowed_tags_and_drops_event_handlers(sanitizer):
    value = '<p onclick="steal()">Hi</p><script>alert(1)</script>'
    assert sanitizer.sanitize(value, "html") == "<p>Hi</p>"


def test_html_drops_disallowed_tags_but_keeps_text(sanitizer):
    assert sanitizer.sanitize("<iframe src=x></iframe><b>bold</b>", "html") == "bold"


@pytest.mark.parametrize("link", [
    '<a href="javascript:alert(1)">x</a>',
    "<a href='vbscript:msgbox(1)'>x</a>",
    "<a href=data:text/html,evil>x</a>",
])
def test_html_removes_dangerous_schemes(sanitizer, link):
    cleaned = sanitizer.sanitize(link, "html")
    assert cleaned.startswith("<a")
    assert "javascript" not in cleaned
    assert "vbscript" not in cleaned
    assert "data:" not in cleaned


def test_html_keeps_safe_links(sanitizer):
    value = '<a href="https://example.org/">ok</a>'
    assert sanitizer.sanitize(value, "html") == value


def test_html_unquoted_event_handler(sanitizer):
    cleaned = sanitizer.sanitize("<img src=pic.png onerror=alert(1)>", "html")
    assert "onerror" not in cleaned
    assert 'src="pic.png"' in cleaned


def test_email(sanitizer):
    assert sanitizer.sanitize(" writer@blog.org ", "email") == "writer@blog.org"
    assert sanitizer.sanitize("not-an-email", "email") == ""


def test_url(sanitizer):
    assert sanitizer.sanitize("https://blog.org/page?id=1", "url") == "https://blog.org/page?id=1"
    assert sanitizer.sanitize("javascript:alert(1)", "url") == ""
    assert sanitizer.sanitize("no url here", "url") == ""


def test_numbers(sanitizer):
    assert sanitizer.sanitize("42abc", "int") == 42
    assert sanitizer.sanitize("abc", "int") == 0
    assert sanitizer.sanitize("-7", "int") == -7
    assert sanitizer.sanitize("3.14", "float") == pytest.approx(3.14)
    assert sanitizer.sanitize("1.2.3", "float") == 0.0


def test_alphanumeric(sanitizer):
    assert sanitizer.sanitize("ab c!_-1", "alphanumeric") == "abc_-1"


@pytest.mark.parametrize("name,expected", [
    ("../../etc/passwd", "passwd"),
    ("..\\uploads\\evil file.php", "evilfile.php"),
    ("photo (1).JPG", "photo1.JPG"),
])
def test_filename(sanitizer, name, expected):
    assert sanitizer.sanitize(name, "filename") == expected


def test_unknown_kind_falls_back_to_string(sanitizer):
    assert sanitizer.sanitize("<i>x</i>", "mystery") == "x"


def test_strip_tags_removes_comments():
    assert strip_tags("a<!-- hidden -->b<?php echo 1; ?>c") == "abc"


@pytest.mark.parametrize("kind", ["html", "string"])
def test_split_tags_do_not_rebuild_into_script(sanitizer, kind):
    cleaned = sanitizer.sanitize("<<x>script>alert(1)<</x>/script>", kind)
    assert "<script" not in cleaned
    assert "</script" not in cleaned


def test_entity_encoded_scheme_is_removed(sanitizer):
    cleaned = sanitizer.sanitize('<a href="&#106;avascript:alert(1)">x</a>', "html")
    assert cleaned == "<a>x</a>"


def test_html_keeps_only_allowed_attributes(sanitizer):
    cleaned = sanitizer.sanitize('<p style="color:red" data-x="1">Hi</p>', "html")
    assert cleaned == "<p>Hi</p>"


def test_plain_text_is_escaped(sanitizer):
    assert sanitizer.sanitize("Tom & Jerry < 3") == "Tom &amp; Jerry &lt; 3"


def test_slugify_decodes_entities():
    assert slugify("Tom &amp; Jerry") == "tom-jerry"
