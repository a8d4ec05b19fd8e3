"""Tests for translation setup."""

import gettext
import importlib

from scanprep.utils import i18n


class TestTranslation:
    def test_import_keeps_default_domain(self):
        before = gettext.textdomain()
        importlib.reload(i18n)
        assert gettext.textdomain() == before
        assert gettext.textdomain() != i18n.TEXT_DOMAIN

    def test_untranslated_text_passes_through(self):
        assert i18n._("Straighten a skewed page") == "Straighten a skewed page"
