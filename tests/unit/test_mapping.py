import pytest

from core.exceptions import MappingError
from core.mapping import default_mapping, load_mapping, parse_mapping
from core.models import Endianness


def document(*spns, pgn=61444):
    return {
        "schema": "j1939-map-v1",
        "notes": "test",
        "signals": [{"pgn": pgn, "name": "EEC1", "spns": list(spns)}],
    }


RPM = {"spn": 190, "sig": "engine_rpm", "src": "ECM", "unit": "rpm",
       "bytes": [3, 4], "endian": "LE", "scale": 0.125, "offset": 0}


class TestParseMapping:
    def test_valid_document(self):
        mapping = parse_mapping(document(RPM))

        assert mapping.schema_id == "j1939-map-v1"
        assert mapping.pgns == [61444]
        rule = mapping.rule_for(61444).spns[0]
        assert rule.signal_name == "engine_rpm"
        assert rule.byte_indices == (3, 4)
        assert rule.endianness is Endianness.LITTLE
        assert rule.scale == 0.125

    def test_lookup_miss(self):
        assert parse_mapping(document(RPM)).rule_for(65262) is None

    def test_defaults(self):
        mapping = parse_mapping(document({"spn": 110, "sig": "coolant_temp", "bytes": [0]}))
        rule = mapping.rule_for(61444).spns[0]
        assert rule.source == "ECM"
        assert rule.unit == ""
        assert rule.endianness is Endianness.LITTLE
        assert rule.scale == 1.0
        assert rule.offset == 0.0
        assert rule.compiled_formula is None

    @pytest.mark.parametrize("spelling,expected", [
        ("BE", Endianness.BIG),
        ("big", Endianness.BIG),
        ("BigEndian", Endianness.BIG),
        ("little", Endianness.LITTLE),
        ("LittleEndian", Endianness.LITTLE),
    ])
    def test_endianness_spellings(self, spelling, expected):
        mapping = parse_mapping(document({**RPM, "endian": spelling}))
        assert mapping.rule_for(61444).spns[0].endianness is expected

    def test_formula_compiled_on_load(self):
        mapping = parse_mapping(document({**RPM, "formula": "x / 60"}))
        formula = mapping.rule_for(61444).spns[0].compiled_formula
        assert formula is not None
        assert formula(120.0) == 2.0

    def test_blank_formula_ignored(self):
        mapping = parse_mapping(document({**RPM, "formula": "  "}))
        assert mapping.rule_for(61444).spns[0].compiled_formula is None

    @pytest.mark.parametrize("bad", [
        {**RPM, "bytes": [8]},
        {**RPM, "bytes": []},
        {**RPM, "bytes": [5, 6, 7, 8]},
        {**RPM, "bytes": [5, 6, 7, 0]},
        {**RPM, "endian": "middle"},
        {**RPM, "formula": "__import__('os').system('true')"},
        {**RPM, "spn": -1},
        {k: v for k, v in RPM.items() if k != "sig"},
        {k: v for k, v in RPM.items() if k != "bytes"},
    ])
    def test_invalid_spn_rule(self, bad):
        with pytest.raises(MappingError):
            parse_mapping(document(bad))

    def test_pgn_out_of_range(self):
        with pytest.raises(MappingError):
            parse_mapping(document(RPM, pgn=0x40000))

    def test_duplicate_pgn(self):
        doc = document(RPM)
        doc["signals"].append(dict(doc["signals"][0]))
        with pytest.raises(MappingError, match="duplicate PGN"):
            parse_mapping(doc)

    def test_missing_signals(self):
        with pytest.raises(MappingError):
            parse_mapping({"schema": "j1939-map-v1"})

    def test_not_an_object(self):
        with pytest.raises(MappingError):
            parse_mapping([RPM])

    def test_misspelled_spn_key_rejected(self):
        with pytest.raises(MappingError, match="scael"):
            parse_mapping(document({**RPM, "scael": 0.5}))

    def test_unknown_pgn_key_rejected(self):
        doc = document(RPM)
        doc["signals"][0]["spn"] = []
        with pytest.raises(MappingError):
            parse_mapping(doc)

    def test_unknown_top_level_key_rejected(self):
        with pytest.raises(MappingError):
            parse_mapping({**document(RPM), "signal": []})

    def test_rules_are_immutable(self):
        mapping = parse_mapping(document(RPM))
        with pytest.raises(Exception):
            mapping.rule_for(61444).spns[0].scale = 2.0


class TestLoadMapping:
    def test_load_fixture(self, fixtures_dir):
        mapping = load_mapping(fixtures_dir / "engine.map.json")
        assert mapping.pgns == [61444, 64780]
        assert [s.spn for s in mapping.rule_for(61444).spns] == [512, 513, 190]

    def test_missing_file(self, tmp_path):
        with pytest.raises(MappingError):
            load_mapping(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(MappingError):
            load_mapping(path)


class TestDefaultMapping:
    def test_engine_pgns(self):
        mapping = default_mapping()
        assert mapping.pgns == [61444, 65262, 65263, 65266]
        rpm = mapping.rule_for(61444).spns[0]
        assert (rpm.spn, rpm.signal_name, rpm.byte_indices, rpm.scale) == (190, "engine_rpm", (3, 4), 0.125)
        coolant = mapping.rule_for(65262).spns[0]
        assert (coolant.spn, coolant.offset) == (110, -40)

    def test_oil_pressure_position(self):
        mapping = default_mapping()
        oil = mapping.rule_for(65263).spns[0]
        assert (oil.spn, oil.byte_indices, oil.scale) == (100, (3,), 4)
        assert "byte 3" in mapping.notes
