import io
import zipfile

import pytest

from linkpub.models import Article


def _article(index: int, **overrides) -> Article:
    values = {
        "title": f"Article {index}",
        "content": f"<p>Body of article {index}.</p>",
        "excerpt": f"Excerpt {index}",
        "site_name": f"site{index}.example",
        "url": f"https://site{index}.example/post/{index}",
        "word_count": 100 * index,
    }
    values.update(overrides)
    return Article(**values)


@pytest.fixture
def make_article():
    return _article


@pytest.fixture
def sample_articles() -> list[Article]:
    return [_article(1), _article(2), _article(3)]


def unzip(data: bytes) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return {info.filename: archive.read(info.filename) for info in archive.infolist()}


@pytest.fixture
def read_epub():
    return unzip
