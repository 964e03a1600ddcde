"""
Unit tests for PDF density presets, locale packs and render configuration.
"""

import dataclasses
import pytest

from quotevoice.models import Company
from quotevoice.services.pdf_config_service import (
    DENSITY_CONFIGS,
    LOCALE_LABELS,
    get_density_config,
    get_locale_labels,
    normalize_locale,
    suggest_density
)
from quotevoice.services.pdf_service import resolve_render_config


class TestDensity:

    def test_compact_preset(self):
        cfg = get_density_config('compact')
        assert cfg.page_margin == 30
        assert cfg.body_size == 8
        assert cfg.max_description_length == 80
        assert cfg.show_banking_info is False
        assert cfg.show_signature is False

    def test_detailed_preset(self):
        cfg = get_density_config('detailed')
        assert cfg.title_size == 28
        assert cfg.table_padding == 10
        assert cfg.show_signature is True
        assert cfg.max_description_length is None

    @pytest.mark.parametrize('density', [None, '', 'huge', 'NORMAL'])
    def test_unknown_density_is_normal(self, density):
        assert get_density_config(density) == DENSITY_CONFIGS['normal']

    @pytest.mark.parametrize('count,expected', [
        (0, 'detailed'), (5, 'detailed'), (6, 'normal'), (15, 'normal'), (16, 'compact'), (200, 'compact'),
    ])
    def test_suggest_density(self, count, expected):
        assert suggest_density(count) == expected

    def test_presets_are_immutable(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DENSITY_CONFIGS['normal'].page_margin = 1


class TestLocales:

    def test_all_locales_share_the_same_keys(self):
        keys = set(LOCALE_LABELS['fr-BE'])
        for locale, labels in LOCALE_LABELS.items():
            assert set(labels) == keys, locale

    def test_labels(self):
        assert get_locale_labels('fr-BE')['quote'] == 'Devis'
        assert get_locale_labels('nl-BE')['invoice'] == 'Factuur'

    def test_unknown_locale_falls_back(self):
        assert normalize_locale('es-AR') == 'fr-BE'
        assert normalize_locale(None, default='nl-BE') == 'nl-BE'
        assert normalize_locale('xx', default='yy') == 'fr-BE'

    def test_labels_are_a_copy(self):
        get_locale_labels('fr-BE')['quote'] = 'changed'
        assert get_locale_labels('fr-BE')['quote'] == 'Devis'


class TestRenderConfig:

    def test_defaults(self):
        config = resolve_render_config(None, None, None, None, item_count=20)
        assert config.density == 'compact'
        assert config.locale == 'fr-BE'
        assert config.tier == 'free'
        assert config.branding.show_watermark is True

    def test_explicit_values(self):
        company = Company(name='Dupont', primary_color='#112233')
        config = resolve_render_config('detailed', 'pro', 'nl-BE', company, item_count=40)
        assert config.density == 'detailed'
        assert config.density_config.show_signature is True
        assert config.locale == 'nl-BE'
        assert config.labels['invoice'] == 'Factuur'
        assert config.branding.primary_color == '#112233'

    def test_unknown_values_fall_back(self):
        config = resolve_render_config('giant', 'platinum', 'xx-XX', None, default_locale='de-BE')
        assert config.density == 'normal'
        assert config.tier == 'free'
        assert config.locale == 'de-BE'

    def test_config_is_immutable(self):
        config = resolve_render_config('normal', 'pro', 'fr-BE', None)
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.density = 'compact'
