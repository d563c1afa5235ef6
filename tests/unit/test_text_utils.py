"""
Tests for cell text helpers.
"""

from utils.text_utils import is_image_reference, extract_url, strip_quotes


class TestIsImageReference:

    def test_http_url(self):
        assert is_image_reference("http://img/1.png") is True

    def test_https_url(self):
        assert is_image_reference("https://cdn.example.com/a.jpg") is True

    def test_img_tag(self):
        assert is_image_reference('<img src="http://img/1.png">') is True

    def test_plain_text(self):
        assert is_image_reference("Widget") is False

    def test_url_not_at_start(self):
        assert is_image_reference("see http://img/1.png") is False

    def test_non_string(self):
        assert is_image_reference(42) is False
        assert is_image_reference(None) is False


class TestExtractUrl:

    def test_img_src_attribute(self):
        assert extract_url('<img src="https://cdn/a.jpg" width=100>') == "https://cdn/a.jpg"

    def test_single_quoted_src(self):
        assert extract_url("<img src='https://cdn/b.png'>") == "https://cdn/b.png"

    def test_embedded_url(self):
        assert extract_url("image: https://cdn/c.png (main)") == "https://cdn/c.png"

    def test_plain_text_trimmed(self):
        assert extract_url("  no url here  ") == "no url here"

    def test_hyperlink_dict(self):
        assert extract_url({"hyperlink": "https://cdn/d.png", "text": "pic"}) == "https://cdn/d.png"

    def test_text_dict(self):
        assert extract_url({"text": "https://cdn/e.png"}) == "https://cdn/e.png"

    def test_empty_values(self):
        assert extract_url(None) == ""
        assert extract_url("") == ""
        assert extract_url({}) == ""


class TestStripQuotes:

    def test_ascii_quotes(self):
        assert strip_quotes('"幼儿玩具"') == "幼儿玩具"

    def test_cjk_quotes(self):
        assert strip_quotes("“办公室解压” ") == "办公室解压"

    def test_none(self):
        assert strip_quotes(None) == ""
