"""
Tests for configuration defaults and validation
"""

import pytest

from site_suitability.config import PipelineConfig, get_config, validate_config
from site_suitability.exceptions import ConfigurationError, SiteSuitabilityError
from site_suitability.analysis import LAYER_SEQUENCE
from site_suitability.pipeline import SITE_LAYERS, SEARCH_LAYERS


class TestDefaults:
    def test_geometry_defaults(self):
        geometry = PipelineConfig().geometry
        assert geometry.min_fragment_area_m2 == 100.0
        assert geometry.power_line_buffer_m == 10.0
        assert geometry.biodiversity_batch_size == 5
        assert geometry.area_estimate_ratio == 0.1

    def test_scoring_maximum_is_sixteen_criteria(self):
        assert PipelineConfig().scoring.max_total == 16 * 3

    def test_every_layer_has_an_endpoint(self):
        layers = PipelineConfig().api.layers
        for layer in LAYER_SEQUENCE:
            assert layer in layers
        for layer in list(SITE_LAYERS.values()) + list(SEARCH_LAYERS.values()):
            assert layer in layers

    def test_fetch_deadline(self):
        assert PipelineConfig().api.fetch_deadline_s == 10.0

    def test_cache_ttl_one_week(self):
        assert PipelineConfig().api.cache_ttl_s == 7 * 24 * 3600

    def test_token_from_environment(self, monkeypatch):
        monkeypatch.setenv("ARCGIS_TOKEN", "abc123")
        assert PipelineConfig().api.token == "abc123"

    def test_global_config(self):
        assert isinstance(get_config(), PipelineConfig)


class TestValidateConfig:
    def test_defaults_are_valid(self):
        validate_config(PipelineConfig())

    def test_collects_every_error(self):
        config = PipelineConfig()
        config.geometry.min_fragment_area_m2 = -1
        config.scoring.max_total = 0

        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)

        message = str(exc_info.value)
        assert "min_fragment_area_m2" in message
        assert "max_total" in message

    def test_error_hierarchy(self):
        config = PipelineConfig()
        config.scoring.udp_near_m = 5000

        with pytest.raises(ValueError):
            validate_config(config)
        assert issubclass(ConfigurationError, SiteSuitabilityError)

    def test_negative_cache_ttl(self):
        config = PipelineConfig()
        config.api.cache_ttl_s = -1

        with pytest.raises(ConfigurationError, match="cache_ttl_s"):
            validate_config(config)

    def test_cache_ttl_may_be_disabled(self):
        config = PipelineConfig()
        config.api.cache_ttl_s = None
        validate_config(config)
