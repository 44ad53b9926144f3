import pytest

from mfds_matcher.indexer import ReferenceIndex


def catalog_row(name_ko, name_en, ingredient, form="정제", new_drug="N",
                approved="2010-01-01", status="", code="", maker=""):
    return {
        "제품명": name_ko,
        "제품영문명": name_en,
        "주성분": ingredient,
        "제형": form,
        "신약구분": new_drug,
        "허가일자": approved,
        "취소취하": status,
        "품목기준코드": code,
        "업체명": maker,
    }


@pytest.fixture
def make_row():
    return catalog_row


@pytest.fixture
def catalog_rows():
    """
    0-3 ibuprofen (one original, one syrup), 4-5 acetaminophen with the
    generic cancelled, 6-7 naproxen with every record cancelled.
    """
    return [
        catalog_row("부루펜정", "Brufen Tab", "Ibuprofen", new_drug="Y", approved="2000-01-01", code="A001", maker="삼일제약"),
        catalog_row("이부펜정", "Ibufen Tab", "Ibuprofen", approved="2010-05-01", code="A002", maker="한국제약"),
        catalog_row("캐롤에프정", "Carol F Tab", "Ibuprofen", approved="2015-03-01", code="A003", maker="일동제약"),
        catalog_row("부루펜시럽", "Brufen Syrup", "Ibuprofen", form="시럽", approved="2012-01-01", code="A004", maker="삼일제약"),
        catalog_row("타이레놀정", "Tylenol Tab", "아세트아미노펜(Acetaminophen)", new_drug="Y", approved="1990-01-01", code="B001"),
        catalog_row("세토펜정", "Cetofen Tab", "아세트아미노펜(Acetaminophen)", approved="2008-01-01", status="취소", code="B002"),
        catalog_row("낙센정", "Naxen Tab", "Naproxen Sodium", new_drug="Y", approved="1995-01-01", status="취소", code="C001"),
        catalog_row("나프록센정", "Naproxen Tab", "Naproxen", approved="2001-01-01", status="취하", code="C002"),
    ]


@pytest.fixture
def reference_index(catalog_rows):
    return ReferenceIndex.from_rows(catalog_rows)


@pytest.fixture
def ibuprofen_catalog():
    return [
        catalog_row("부루펜정", "Brufen Tab", "Ibuprofen", new_drug="Y", approved="2000-01-01", code="A001"),
        catalog_row("이부펜정", "Ibufen Tab", "Ibuprofen", approved="2010-05-01", code="A002"),
        catalog_row("캐롤에프정", "Carol F Tab", "Ibuprofen", approved="2015-03-01", code="A003"),
    ]


@pytest.fixture
def split_form_catalog():
    """Original syrup with two generic tablets"""
    return [
        catalog_row("부루펜시럽", "Brufen Syrup", "Ibuprofen", form="시럽", new_drug="Y", approved="2000-01-01", code="A001"),
        catalog_row("이부펜정", "Ibufen Tab", "Ibuprofen", approved="2010-05-01", code="A002"),
        catalog_row("캐롤에프정", "Carol F Tab", "Ibuprofen", approved="2015-03-01", code="A003"),
    ]
