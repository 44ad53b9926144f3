from mfds_matcher.models import MappingEntry, MatchTier, SourceRecord
from mfds_matcher.scorer import Matcher, best_of, build_mapping_lookup


def source(label, position=0):
    return SourceRecord(position=position, source_id=position + 1, label=label)


def test_exact_english(reference_index):
    found = Matcher(reference_index).match(source("Brufen Tab"))
    assert found.tier == MatchTier.EXACT_EN
    assert found.score == 1.0
    assert found.record.position == 0


def test_exact_korean(reference_index):
    found = Matcher(reference_index).match(source("타이레놀정"))
    assert found.tier == MatchTier.EXACT_KO
    assert found.record.position == 4


def test_token_converged(reference_index):
    found = Matcher(reference_index).match(source("Brufen 200mg"))
    assert found.tier == MatchTier.TOKEN_ING_CONVERGED
    assert found.record.position == 0
    assert 0 < found.score < 1


def test_token_multi_ingredient(reference_index):
    found = Matcher(reference_index).match(source("Tab XYZ"))
    assert found.tier == MatchTier.TOKEN_MULTI_ING
    assert found.record.is_active


def test_prefix_and_substring_report_prefix_match(reference_index):
    matcher = Matcher(reference_index)
    assert matcher.match(source("Tylen")).tier == MatchTier.PREFIX_MATCH
    found = matcher.match(source("XTylenol"))
    assert found.tier == MatchTier.PREFIX_MATCH
    assert found.record.position == 4


def test_fuzzy_broad(reference_index):
    found = Matcher(reference_index).match(source("ZRUFENX"))
    assert found.tier == MatchTier.FUZZY_BROAD
    assert found.record.position == 0
    assert found.score >= 0.4


def test_not_found(reference_index):
    matcher = Matcher(reference_index)
    assert matcher.match(source("XYZ999")) is None
    assert matcher.match(source("ab")) is None
    assert matcher.match(source("")) is None


def test_mapping_item_code_beats_exact_name(reference_index):
    mappings = [MappingEntry(code_token="BRUFEN", item_code="A003")]
    found = Matcher(reference_index, mappings).match(source("Brufen Tab"))
    assert found.tier == MatchTier.MAP_ITEM_CODE
    assert found.record.position == 2
    assert found.score == 1.0


def test_mapping_falls_back_to_ingredient(reference_index):
    mappings = [MappingEntry(code_token="brufen", item_code="ZZZ", ingredient_base="Ibuprofen")]
    found = Matcher(reference_index, mappings).match(source("brufen tab"))
    assert found.tier == MatchTier.MAP_INGREDIENT_BASE
    assert found.record.position == 0
    assert found.score == 1.0


def test_mapping_falls_back_to_product_name(reference_index):
    mappings = [MappingEntry(code_token="BRUFEN", product_name="타이레놀정")]
    found = Matcher(reference_index, mappings).match(source("Brufen Tab"))
    assert found.tier == MatchTier.MAP_PRODUCT_NAME
    assert found.record.position == 4


def test_unresolved_mapping_falls_through(reference_index):
    mappings = [MappingEntry(code_token="BRUFEN", item_code="ZZZ", product_name="없는제품")]
    found = Matcher(reference_index, mappings).match(source("Brufen Tab"))
    assert found.tier == MatchTier.EXACT_EN


def test_mapping_lookup_last_entry_wins():
    lookup = build_mapping_lookup([
        MappingEntry(code_token="abc", item_code="1"),
        MappingEntry(code_token="ABC", item_code="2"),
        MappingEntry(code_token="", item_code="3"),
    ])
    assert list(lookup) == ["ABC"]
    assert lookup["ABC"].item_code == "2"


def test_mapping_entry_accepts_sheet_column_names():
    entry = MappingEntry.model_validate({
        "Product_code_token": " BRUFEN ",
        "mapped_mfds_item_code": 12345.0,
        "mapped_ingredient_base": None,
    })
    assert entry.code_token == "BRUFEN"
    assert entry.item_code == "12345"
    assert entry.ingredient_base == ""


def test_best_of_prefers_active(reference_index):
    found = best_of({4, 5}, "CETOFEN TAB", reference_index, active_only=True)
    assert found.record.position == 4
    found = best_of({4, 5}, "CETOFEN TAB", reference_index, active_only=False)
    assert found.record.position == 5
    assert found.score == 1.0


def test_best_of_keeps_most_recent_on_ties(make_row):
    from mfds_matcher.indexer import ReferenceIndex

    index = ReferenceIndex.from_rows([
        make_row("같은정", "Same Tab", "X", approved="2001-01-01"),
        make_row("같은정", "Same Tab", "X", approved="2015-01-01"),
    ])
    found = best_of({0, 1}, "SAME", index, active_only=True)
    assert found.record.position == 1


def test_best_of_empty(reference_index):
    assert best_of(set(), "ANY", reference_index, active_only=True) is None
