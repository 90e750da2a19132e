import io
import xml.etree.ElementTree as ET
import zipfile
from datetime import datetime, timezone

import pytest

from linkpub import builder
from linkpub.builder import build_epub, epub_filename
from linkpub.config import EpubVariant
from linkpub.errors import EncodingError, ValidationError
from linkpub.models import Article, Collection
from linkpub.normalizer import escape_for_xml

OPF_NS = {"opf": "http://www.idpf.org/2007/opf", "dc": "http://purl.org/dc/elements/1.1/"}
NCX_NS = {"ncx": "http://www.daisy.org/z3986/2005/ncx/"}
BUILT_AT = datetime(2026, 2, 20, 12, 30, 0)


def _spine(opf: bytes) -> list[str]:
    root = ET.fromstring(opf)
    return [item.get("idref") for item in root.findall("opf:spine/opf:itemref", OPF_NS)]


def _manifest_ids(opf: bytes) -> list[str]:
    root = ET.fromstring(opf)
    return [item.get("id") for item in root.findall("opf:manifest/opf:item", OPF_NS)]


def _play_orders(ncx: bytes) -> list[int]:
    root = ET.fromstring(ncx)
    return [int(point.get("playOrder")) for point in root.findall("ncx:navMap/ncx:navPoint", NCX_NS)]


def test_mimetype_is_first_and_stored(sample_articles) -> None:
    data = build_epub(Collection(articles=sample_articles))

    assert data.startswith(b"PK\x03\x04")
    assert data[30:38] == b"mimetype"
    assert data[38:58] == b"application/epub+zip"

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        first = archive.infolist()[0]
        assert first.filename == "mimetype"
        assert first.compress_type == zipfile.ZIP_STORED
        assert archive.read("mimetype") == b"application/epub+zip"
        assert archive.testzip() is None


def test_plain_variant_files_and_spine(sample_articles, read_epub) -> None:
    files = read_epub(build_epub(Collection(articles=sample_articles), EpubVariant.PLAIN))

    assert list(files) == [
        "mimetype",
        "META-INF/container.xml",
        "OEBPS/content.opf",
        "OEBPS/toc.ncx",
        "OEBPS/chapter1.html",
        "OEBPS/chapter2.html",
        "OEBPS/chapter3.html",
    ]
    assert b'full-path="OEBPS/content.opf"' in files["META-INF/container.xml"]
    assert _spine(files["OEBPS/content.opf"]) == ["chapter1", "chapter2", "chapter3"]
    assert _play_orders(files["OEBPS/toc.ncx"]) == [1, 2, 3]
    assert b'<div class="chapter-number">' not in files["OEBPS/chapter1.html"]


def test_cover_variant_three_articles(sample_articles, read_epub) -> None:
    files = read_epub(build_epub(Collection(articles=sample_articles), EpubVariant.COVER))

    assert "OEBPS/cover.html" in files
    assert "OEBPS/toc.html" in files
    assert _spine(files["OEBPS/content.opf"]) == ["cover", "toc-page", "chapter1", "chapter2", "chapter3"]
    assert _play_orders(files["OEBPS/toc.ncx"]) == [1, 2, 3, 4]

    ncx = ET.fromstring(files["OEBPS/toc.ncx"])
    first = ncx.find("ncx:navMap/ncx:navPoint", NCX_NS)
    assert first.find("ncx:content", NCX_NS).get("src") == "toc.html"

    assert b'<div class="chapter-number">Chapter 2</div>' in files["OEBPS/chapter2.html"]
    assert b'<a href="chapter3.html">Article 3</a>' in files["OEBPS/toc.html"]
    assert b"3 Articles" in files["OEBPS/cover.html"]


def test_every_spine_idref_has_one_manifest_item(sample_articles, read_epub) -> None:
    for variant in EpubVariant:
        files = read_epub(build_epub(Collection(articles=sample_articles), variant))
        manifest_ids = _manifest_ids(files["OEBPS/content.opf"])
        chapter_ids = [item for item in manifest_ids if item.startswith("chapter")]

        assert len(chapter_ids) == len(sample_articles)
        for idref in _spine(files["OEBPS/content.opf"]):
            assert manifest_ids.count(idref) == 1


def test_opf_metadata(sample_articles, read_epub) -> None:
    collection = Collection(title="Weekend Reads", author="Sam", articles=sample_articles)
    files = read_epub(build_epub(collection, identifier="fixed-id", built_at=BUILT_AT))
    root = ET.fromstring(files["OEBPS/content.opf"])
    metadata = root.find("opf:metadata", OPF_NS)

    assert metadata.find("dc:identifier", OPF_NS).text == "fixed-id"
    assert metadata.find("dc:title", OPF_NS).text == "Weekend Reads"
    assert metadata.find("dc:creator", OPF_NS).text == "Sam"
    assert metadata.find("dc:language", OPF_NS).text == "en"
    assert metadata.find("dc:date", OPF_NS).text == "2026-02-20"
    assert metadata.find("dc:description", OPF_NS).text == "1. Article 1\n2. Article 2\n3. Article 3"
    assert b'<meta name="dtb:uid" content="fixed-id"/>' in files["OEBPS/toc.ncx"]


def test_chapters_follow_collection_order(sample_articles, read_epub) -> None:
    collection = Collection(articles=sample_articles).reorder(0, 2)
    files = read_epub(build_epub(collection, EpubVariant.COVER))

    for number, article in enumerate(collection.articles, start=1):
        chapter = files[f"OEBPS/chapter{number}.html"].decode("utf-8")
        assert f"<h1>{escape_for_xml(article.title)}</h1>" in chapter
        assert f"Chapter {number}</div>" in chapter

    assert b"<h1>Article 2</h1>" in files["OEBPS/chapter1.html"]
    assert b"<h1>Article 1</h1>" in files["OEBPS/chapter3.html"]


def test_chapter_metadata_block_and_verbatim_content(make_article, read_epub) -> None:
    article = make_article(1, content='<p>Keep <em>this</em> &amp; that</p>', word_count=1200)
    files = read_epub(build_epub(Collection(articles=[article])))
    chapter = files["OEBPS/chapter1.html"].decode("utf-8")

    assert "<p>Source: site1.example</p>" in chapter
    assert "<p>URL: https://site1.example/post/1</p>" in chapter
    assert "<p>Word count: 1200 words</p>" in chapter
    assert '<p>Keep <em>this</em> &amp; that</p>' in chapter


def test_fish_and_chips_title_is_escaped(make_article, read_epub) -> None:
    article = make_article(1, title="Fish & Chips")
    files = read_epub(build_epub(Collection.from_article(article)))

    assert b"<dc:title>Fish &amp; Chips</dc:title>" in files["OEBPS/content.opf"]
    assert b"<dc:creator>LinkPub</dc:creator>" in files["OEBPS/content.opf"]
    assert b"<h1>Fish &amp; Chips</h1>" in files["OEBPS/chapter1.html"]


def test_special_characters_still_parse(make_article, read_epub) -> None:
    tricky = "Tom & Jerry's <best> \"episodes\""
    article = make_article(1, title=tricky, site_name="A&B <news>")
    collection = Collection(title=tricky, author="O'Brien & Co", articles=[article])

    for variant in EpubVariant:
        files = read_epub(build_epub(collection, variant))
        opf = ET.fromstring(files["OEBPS/content.opf"])
        ET.fromstring(files["OEBPS/toc.ncx"])
        ET.fromstring(files["OEBPS/chapter1.html"])

        assert opf.find("opf:metadata/dc:title", OPF_NS).text == tricky
        assert opf.find("opf:metadata/dc:creator", OPF_NS).text == "O'Brien & Co"


def test_missing_title_and_site_name_fall_back() -> None:
    article = Article(content="<p>Anonymous body text.</p>")
    files_data = build_epub(Collection(articles=[article]))

    with zipfile.ZipFile(io.BytesIO(files_data)) as archive:
        chapter = archive.read("OEBPS/chapter1.html").decode("utf-8")

    assert "<h1>Untitled Article</h1>" in chapter
    assert "<p>Source: unknown</p>" in chapter
    assert "Word count" not in chapter


def test_empty_collection_fails_validation() -> None:
    with pytest.raises(ValidationError):
        build_epub(Collection(articles=[]))


def test_unembeddable_text_raises_encoding_error(make_article) -> None:
    with pytest.raises(EncodingError):
        build_epub(Collection(articles=[make_article(1, title="bad\x01title")]))

    lone_surrogate = make_article(1).model_copy(update={"content": "<p>\ud800</p>"})
    with pytest.raises(EncodingError):
        build_epub(Collection(articles=[lone_surrogate]))


def test_estimated_page_count_in_ncx(make_article, read_epub) -> None:
    collection = Collection(articles=[make_article(1, word_count=300), make_article(2, word_count=201)])
    files = read_epub(build_epub(collection))

    assert collection.estimated_page_count == 3
    assert b'<meta name="dtb:totalPageCount" content="3"/>' in files["OEBPS/toc.ncx"]


def test_builds_are_identical_apart_from_identifier_and_date(sample_articles, read_epub) -> None:
    collection = Collection(title="Same", articles=sample_articles)

    first = build_epub(collection, EpubVariant.COVER, identifier="id-1", built_at=BUILT_AT)
    again = build_epub(collection, EpubVariant.COVER, identifier="id-1", built_at=BUILT_AT)
    assert first == again

    other = read_epub(build_epub(collection, EpubVariant.COVER, identifier="id-2", built_at=BUILT_AT))
    reference = read_epub(first)
    assert list(other) == list(reference)
    for name, content in reference.items():
        assert other[name] == content.replace(b"id-1", b"id-2")


def test_fresh_identifier_per_build(sample_articles, read_epub) -> None:
    collection = Collection(articles=sample_articles)
    first = ET.fromstring(read_epub(build_epub(collection))["OEBPS/content.opf"])
    second = ET.fromstring(read_epub(build_epub(collection))["OEBPS/content.opf"])

    path = "opf:metadata/dc:identifier"
    assert first.find(path, OPF_NS).text != second.find(path, OPF_NS).text


def test_epub_filename() -> None:
    assert epub_filename("My Reads: Vol 1") == "My_Reads_Vol_1.epub"
    assert epub_filename("My Reads", EpubVariant.COVER) == "My_Reads_with_cover.epub"


def test_identifier_is_escaped(sample_articles, read_epub) -> None:
    files = read_epub(build_epub(Collection(articles=sample_articles), identifier="urn:a&b"))

    opf = ET.fromstring(files["OEBPS/content.opf"])
    assert opf.find("opf:metadata/dc:identifier", OPF_NS).text == "urn:a&b"
    assert b'content="urn:a&amp;b"' in files["OEBPS/toc.ncx"]

    with pytest.raises(EncodingError):
        build_epub(Collection(articles=sample_articles), identifier="id\x00")


class _LateEveningClock(datetime):
    """Local time is already the next day while UTC is still on March 1st."""

    @classmethod
    def now(cls, tz=None):
        if tz is None:
            return datetime(2026, 3, 2, 8, 30)
        return datetime(2026, 3, 1, 23, 30, tzinfo=timezone.utc).astimezone(tz)


def test_build_date_defaults_to_utc(monkeypatch: pytest.MonkeyPatch, sample_articles, read_epub) -> None:
    monkeypatch.setattr(builder, "datetime", _LateEveningClock)

    files = read_epub(build_epub(Collection(articles=sample_articles)))

    opf = ET.fromstring(files["OEBPS/content.opf"])
    assert opf.find("opf:metadata/dc:date", OPF_NS).text == "2026-03-01"
