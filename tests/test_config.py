import pydantic
import pytest

from mfds_matcher.config import Settings
from mfds_matcher.models import CancelFilter, GenericCountBasis, GenericDefinition


def test_defaults_build_processing_options():
    options = Settings(_env_file=None).default_options()
    assert options.generic_count_basis == GenericCountBasis.BASE
    assert options.generic_definition == GenericDefinition.EXCL_ORIGINAL
    assert options.cancel_filter == CancelFilter.ACTIVE_ONLY


def test_option_defaults_read_from_env(monkeypatch):
    monkeypatch.setenv("GENERIC_COUNT_BASIS", "base_form")
    monkeypatch.setenv("CANCEL_FILTER", "all")
    settings = Settings(_env_file=None)
    assert settings.GENERIC_COUNT_BASIS == GenericCountBasis.BASE_FORM
    options = settings.default_options()
    assert options.generic_count_basis == GenericCountBasis.BASE_FORM
    assert options.cancel_filter == CancelFilter.ALL


@pytest.mark.parametrize("name", ["GENERIC_COUNT_BASIS", "GENERIC_DEFINITION", "CANCEL_FILTER"])
def test_unknown_option_value_fails_at_load(monkeypatch, name):
    monkeypatch.setenv(name, "bogus")
    with pytest.raises(pydantic.ValidationError):
        Settings(_env_file=None)
