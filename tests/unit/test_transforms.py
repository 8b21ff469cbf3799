"""Tests for the cell transform pipeline."""

from cercagen.import_templates.transforms import (
    DATE_ESTAT,
    QUALITY,
    TransformContext,
    apply_transforms,
)
from cercagen.models.template import TransformStep


def _steps(*items) -> list[TransformStep]:
    steps = []
    for item in items:
        if isinstance(item, str):
            steps.append(TransformStep(name=item))
        else:
            steps.append(item)
    return steps


class TestApplyTransforms:
    """Test apply_transforms."""

    def test_runs_left_to_right(self) -> None:
        """Test steps compose in order."""
        result = apply_transforms("  Àvila ", _steps("trim", "strip_diacritics", "lower"))
        assert result.value == "avila"
        assert result.person_transform == ""

    def test_stops_at_person_parser(self) -> None:
        """Test a person parser ends the pipeline and is reported."""
        result = apply_transforms(" Puig Joan ", _steps("trim", "parse_person_from_cognoms", "lower"))
        assert result.value == "Puig Joan"
        assert result.person_transform == "parse_person_from_cognoms"

    def test_strict_date_records_quality(self) -> None:
        """Test the strict date parser reports a date quality."""
        result = apply_transforms("12/03/1803", _steps("parse_ddmmyyyy_to_iso"))
        assert result.value == "1803-03-12"
        assert result.extras[DATE_ESTAT] == "clear"

        result = apply_transforms("??/??/1804", _steps("parse_ddmmyyyy_to_iso"))
        assert result.value == ""
        assert result.extras[DATE_ESTAT] == "doubtful"

    def test_flexible_date_keeps_text(self) -> None:
        """Test the flexible parser falls back to the original text."""
        result = apply_transforms("¿", _steps("parse_date_flexible_to_base_data_acte"))
        assert result.value == "¿"
        assert result.extras[DATE_ESTAT] == "no_record"

    def test_flexible_date_uses_context_format(self) -> None:
        """Test the template date format is honoured."""
        result = apply_transforms(
            "03/12/1803",
            _steps("parse_date_flexible_to_date_or_text_with_quality"),
            TransformContext(date_format="mm/dd"),
        )
        assert result.value == "1803-03-12"

    def test_parse_int_nullable(self) -> None:
        """Test integers pass and other text becomes empty."""
        assert apply_transforms(" 42 ", _steps("parse_int_nullable")).value == "42"
        assert apply_transforms("quaranta", _steps("parse_int_nullable")).value == ""

    def test_marriage_order(self) -> None:
        """Test the marriage-order pair of transforms."""
        assert apply_transforms("Joan X (2n matrimoni)", _steps("parse_marriage_order_int_nullable")).value == "2"
        assert apply_transforms("Joan X", _steps("parse_marriage_order_int_nullable")).value == ""
        assert apply_transforms("Joan X (2n matrimoni)", _steps("strip_marriage_order_text")).value == "Joan X"

    def test_split_couple_select(self) -> None:
        """Test the right side is selected through args."""
        step = TransformStep(name="split_couple_i", args={"select": "right"})
        assert apply_transforms("Joan X i Maria Y", [step]).value == "Maria Y"
        assert apply_transforms("Joan X i Maria Y", _steps("split_couple_i")).value == "Joan X"

    def test_set_default(self) -> None:
        """Test defaults fill only empty values."""
        step = TransformStep(name="set_default", value="Valls")
        assert apply_transforms("", [step]).value == "Valls"
        assert apply_transforms("Reus", [step]).value == "Reus"
        step = TransformStep(name="set_default", args={"value": "Tarragona"})
        assert apply_transforms("  ", [step]).value == "Tarragona"

    def test_map_values_case_insensitive(self) -> None:
        """Test lookups ignore case and unknown values pass through."""
        step = TransformStep(name="map_values", args={"B": "baptisme", "m": "matrimoni"})
        assert apply_transforms("b", [step]).value == "baptisme"
        assert apply_transforms("M ", [step]).value == "matrimoni"
        assert apply_transforms("x", [step]).value == "x"

    def test_regex_extract(self) -> None:
        """Test the capture group is returned."""
        step = TransformStep(name="regex_extract", args={"pattern": r"foli (\d+)"})
        assert apply_transforms("llibre 3, foli 27", [step]).value == "27"
        assert apply_transforms("sense foli", [step]).value == ""

    def test_regex_extract_explicit_group(self) -> None:
        """Test a named group index."""
        step = TransformStep(name="regex_extract", args={"pattern": r"(\d+)-(\d+)", "group": "2"})
        assert apply_transforms("1800-1810", [step]).value == "1810"

    def test_regex_extract_bad_pattern(self) -> None:
        """Test an invalid pattern yields empty instead of raising."""
        step = TransformStep(name="regex_extract", args={"pattern": "("})
        assert apply_transforms("abc", [step]).value == ""

    def test_parentheticals(self) -> None:
        """Test extraction and stripping of groups."""
        text = "Puig Joan (pagès) (Valls)"
        assert apply_transforms(text, _steps("extract_parenthetical_last")).value == "Valls"
        assert apply_transforms(text, _steps("extract_parenthetical_all")).value == "pagès; Valls"
        assert apply_transforms(text, _steps("strip_parentheticals")).value == "Puig Joan"

    def test_default_quality_if_present(self) -> None:
        """Test a present value is marked clear."""
        result = apply_transforms("pagès", _steps("default_quality_if_present"))
        assert result.extras[QUALITY] == "clear"
        result = apply_transforms("", _steps("default_quality_if_present"))
        assert QUALITY not in result.extras

    def test_normalize_cronologia(self) -> None:
        """Test the chronology label transform."""
        assert apply_transforms("1890. 1891", _steps("normalize_cronologia")).value == "1890/1891"

    def test_unknown_transform_is_skipped(self) -> None:
        """Test an unknown name leaves the value alone."""
        assert apply_transforms("Joan", _steps("shout")).value == "Joan"

    def test_shared_extras(self) -> None:
        """Test a caller-supplied extras dict is filled in place."""
        extras: dict[str, str] = {}
        apply_transforms("12/03/1803", _steps("parse_ddmmyyyy_to_iso"), extras=extras)
        assert extras == {DATE_ESTAT: "clear"}
