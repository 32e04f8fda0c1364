"""Tests for ProcessingSettings validation and presets."""

import math

import pytest

from photo_gallery.errors import InvalidSettingsError
from photo_gallery.processing.config import PARAMETER_RANGES, PRESETS, get_preset
from photo_gallery.processing.models import ProcessingSettings


class TestProcessingSettings:
    """Test the immutable settings value."""

    def test_defaults_are_identity(self):
        settings = ProcessingSettings()
        assert settings.is_noop
        assert settings.temperature == 5500
        assert settings.sharpening == 25
        assert settings.noise_reduction == 25

    def test_immutable(self):
        settings = ProcessingSettings()
        with pytest.raises(AttributeError):
            settings.exposure = 1  # type: ignore[misc]

    def test_with_changes_returns_new_snapshot(self):
        base = ProcessingSettings()
        brighter = base.with_changes(exposure=1.5)
        assert brighter.exposure == 1.5
        assert base.exposure == 0
        assert brighter is not base

    def test_with_changes_validates(self):
        with pytest.raises(InvalidSettingsError):
            ProcessingSettings().with_changes(contrast=150)

    @pytest.mark.parametrize("name", sorted(PARAMETER_RANGES))
    def test_bounds_are_inclusive(self, name):
        bounds = PARAMETER_RANGES[name]
        ProcessingSettings(**{name: bounds.minimum})
        ProcessingSettings(**{name: bounds.maximum})

    @pytest.mark.parametrize("name", sorted(PARAMETER_RANGES))
    def test_out_of_range_rejected(self, name):
        bounds = PARAMETER_RANGES[name]
        with pytest.raises(InvalidSettingsError):
            ProcessingSettings(**{name: bounds.maximum + 1})
        with pytest.raises(InvalidSettingsError):
            ProcessingSettings(**{name: bounds.minimum - 1})

    @pytest.mark.parametrize("value", ["1", None, True, math.nan, [1]])
    def test_non_numbers_rejected(self, value):
        with pytest.raises(InvalidSettingsError):
            ProcessingSettings(exposure=value)  # type: ignore[arg-type]

    def test_all_violations_reported(self):
        with pytest.raises(InvalidSettingsError) as exc_info:
            ProcessingSettings(exposure=5, temperature=100)
        violations = exc_info.value.violations
        assert len(violations) == 2
        assert "exposure=5 outside [-2, 2]" in violations
        assert exc_info.value.code == "INVALID_SETTINGS"
        assert exc_info.value.status == 400


class TestWireFormat:
    """Test conversion to and from request payloads."""

    def test_missing_fields_default(self):
        settings = ProcessingSettings.from_dict({"exposure": 0.5, "noiseReduction": 60})
        assert settings.exposure == 0.5
        assert settings.noise_reduction == 60
        assert settings.temperature == 5500

    def test_none_and_empty(self):
        assert ProcessingSettings.from_dict(None) == ProcessingSettings()
        assert ProcessingSettings.from_dict({"tint": None}) == ProcessingSettings()

    def test_unknown_key_rejected(self):
        with pytest.raises(InvalidSettingsError) as exc_info:
            ProcessingSettings.from_dict({"noise_reduction": 10, "gamma": 2})
        assert exc_info.value.violations == ["unknown parameter: gamma", "unknown parameter: noise_reduction"]

    def test_to_dict_uses_wire_names(self):
        data = ProcessingSettings(noise_reduction=40).to_dict()
        assert data["noiseReduction"] == 40
        assert "noise_reduction" not in data
        assert len(data) == 11
        assert ProcessingSettings.from_dict(data) == ProcessingSettings(noise_reduction=40)


class TestPresets:
    """Test named preset bundles."""

    @pytest.mark.parametrize("name", sorted(PRESETS))
    def test_presets_are_valid_settings(self, name):
        settings = ProcessingSettings.from_dict(PRESETS[name])
        assert not settings.is_noop

    def test_get_preset_returns_copy(self):
        preset = get_preset("Portrait")
        preset["exposure"] = 2
        assert PRESETS["portrait"]["exposure"] == 0.2

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            get_preset("sepia")
