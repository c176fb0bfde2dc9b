"""Test configuration and fixtures."""

import os
import sys
from pathlib import Path

import pytest
from hypothesis import settings as hypothesis_settings

sys.path.insert(0, str(Path(__file__).parent.parent))

from radioconv.codec.fields import default_value
from radioconv.codec.image import encode_image
from radioconv.converters.engine import ConversionEngine
from radioconv.models.image import ContainerKind, RawImage
from radioconv.models.settings import CanonicalSettings
from radioconv.schema.loader import default_table

# Hypothesis profiles: HYPOTHESIS_PROFILE=ci for the thorough run
hypothesis_settings.register_profile("default", max_examples=100, deadline=None)
hypothesis_settings.register_profile("ci", max_examples=500, deadline=None)
hypothesis_settings.register_profile("dev", max_examples=10, deadline=None)
hypothesis_settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


@pytest.fixture(scope="session")
def table():
    """Return the bundled schema table."""
    return default_table()


@pytest.fixture
def engine(table):
    """Return a conversion engine with the default rules and options."""
    return ConversionEngine(table)


@pytest.fixture
def make_settings(table):
    """
    Return a factory for settings at their defaults.

    make_settings("x9d", 216, models=2) gives two default models named
    MODEL01 and MODEL02.
    """

    def factory(board="x9d", version=216, models=0):
        schema = table.resolve(board, version)
        trees = []
        for number in range(models):
            model = default_value(schema.model)
            model["name"] = f"MODEL{number + 1:02d}"
            trees.append(model)
        return CanonicalSettings(
            board=board,
            version=schema.version,
            radio=default_value(schema.radio),
            models=trees,
        )

    return factory


@pytest.fixture
def make_image(table):
    """Return a factory encoding settings into a RawImage."""

    def factory(settings, kind=ContainerKind.RAW, metadata=None):
        schema = table.exact(settings.board, settings.version)
        return RawImage.create(
            encode_image(settings, schema), kind, settings.board, settings.version, metadata=metadata
        )

    return factory


@pytest.fixture
def glider(make_settings):
    """Return populated x9d v216 settings with two models."""
    settings = make_settings("x9d", 216, models=2)
    settings.radio["contrast"] = 20
    settings.radio["backlight_delay"] = 3
    settings.radio["speaker_volume"] = 23
    settings.radio["vbat_warn"] = 7.2
    settings.radio["owner_name"] = "PILOT"
    settings.radio["flags"] = ["jitter_filter"]

    model = settings.models[0]
    model["name"] = "GLIDER"
    model["model_id"] = 3
    model["thr_trim"] = True
    model["timers"][0] = {"mode": "throttle", "start": 300, "countdown_beep": "voice"}
    model["mixes"] = [
        {
            "dest_channel": 0,
            "source": 1,
            "weight": -50,
            "offset": 10,
            "flags": ["carry_trim"],
            "name": "AIL",
        },
        {
            "dest_channel": 2,
            "source": 4,
            "weight": 100,
            "offset": 0,
            "flags": [],
            "name": "THR",
        },
    ]
    return settings


@pytest.fixture
def glider_image(glider, make_image):
    """Return the populated x9d v216 settings as a raw image."""
    return make_image(glider)
