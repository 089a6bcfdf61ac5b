# tests/unit/test_config.py

import json
import re

import pytest

from geosub.config import (
    EngineConfig, convert_patterns, load_config_file, parse_band_list, parse_window, to_match_value
)
from geosub.exceptions import ConfigError, RequestValidationError
from geosub.selectors import BandSelector, Literal, Pattern
from geosub.window import BoundingBox

def test_to_match_value():
    assert to_match_value("SPDL") == Literal("SPDL")
    assert to_match_value(7) == Literal("7")
    assert to_match_value("/^7.+ISBL/").regex.pattern == "^7.+ISBL"
    compiled = re.compile("x")
    assert to_match_value(compiled) == Pattern(compiled)
    assert to_match_value("/") == Literal("/")

    with pytest.raises(TypeError):
        to_match_value(["a"])

def test_convert_patterns_is_recursive():
    data = {'bands': [{'description': '/^TMP/', 'metaData': {'A': '/x+/', 'B': 'plain'}}], 'n': 3}
    converted = convert_patterns(data)
    selector = converted['bands'][0]

    assert isinstance(selector['description'], Pattern)
    assert isinstance(selector['metaData']['A'], Pattern)
    assert selector['metaData']['B'] == 'plain'
    assert converted['n'] == 3

def test_parse_band_list():
    selectors = parse_band_list("10,/^7.+ISBL/,SPDL,")
    assert len(selectors) == 3
    assert selectors[0] == BandSelector(id=10)
    assert isinstance(selectors[1].description, Pattern)
    assert selectors[1].description.regex.pattern == "^7.+ISBL"
    assert selectors[2] == BandSelector(description=Literal("SPDL"))

def test_parse_band_list_rejects_bad_pattern():
    with pytest.raises(RequestValidationError):
        parse_band_list("/(/")

def test_parse_window():
    assert parse_window("-8.0125,53.0125,12.0125,37.9875") == BoundingBox(-8.0125, 53.0125, 12.0125, 37.9875)
    with pytest.raises(RequestValidationError):
        parse_window("1,2,3")

def test_load_config_file(tmp_path):
    path = tmp_path / "conf.json"
    path.write_text(json.dumps({
        'bands': [
            {'metaData': {'GRIB_ELEMENT': 'TMP', 'GRIB_SHORT_NAME': '/ISBL$/'}},
            {'description': 'SPDL'},
            {'id': 1}
        ],
        'bbox': [-8.0125, 53.0125, 12.0125, 37.9875]
    }))

    conf = load_config_file(path)

    assert len(conf.bands) == 3
    assert conf.bands[0].meta_data['GRIB_ELEMENT'] == Literal('TMP')
    assert conf.bands[0].meta_data['GRIB_SHORT_NAME'].regex.pattern == "ISBL$"
    assert conf.bands[1].description == Literal('SPDL')
    assert conf.bands[2].id == 1
    assert conf.bbox == BoundingBox(-8.0125, 53.0125, 12.0125, 37.9875)

def test_load_config_file_is_optional_per_key(tmp_path):
    path = tmp_path / "conf.json"
    path.write_text('{"bbox": [0, 10, 10, 0]}')
    conf = load_config_file(path)
    assert conf.bands is None
    assert conf.bbox == BoundingBox(0, 10, 10, 0)

@pytest.mark.parametrize("content", [
    "{not json",
    "[1, 2]",
    '{"bands": {"id": 1}}',
    '{"bands": [{"colour": "red"}]}',
    '{"bbox": [1, 2]}',
    '{"bands": [{"description": "/(/"}]}',
])
def test_load_config_file_errors(tmp_path, content):
    path = tmp_path / "bad.json"
    path.write_text(content)
    with pytest.raises(ConfigError, match="Failed parsing"):
        load_config_file(path)

def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config_file(tmp_path / "missing.json")

def test_engine_config_defaults():
    config = EngineConfig()
    assert config.gdal_options == {"GRIB_NORMALIZE_UNITS": "NO"}
    assert config.max_concurrency == 16
    assert config.timeout is None
    assert config.staging == "auto"

    assert EngineConfig(gdal_options={}).gdal_options == {}
    with pytest.raises(ValueError):
        EngineConfig(max_concurrency=0)
