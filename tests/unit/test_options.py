#!/usr/bin/env python3
"""
Tests for LoaderOptions, environment configuration and I/O helpers.
"""

import pytest
from pathlib import Path
from modloader.loader.options import LoaderOptions
from modloader.utils.io_utils import address_to_path, path_to_base_url


class TestLoaderOptions:
    """Defaults, validation and environment overrides"""

    def test_defaults(self):
        options = LoaderOptions()
        assert options.base_url == path_to_base_url(Path.cwd())
        assert options.source_maps is False
        assert options.modules == "register"
        assert options.default_extension == ".pym"

    def test_directory_becomes_file_url(self, fixtures_dir):
        options = LoaderOptions(base_url=str(fixtures_dir))
        assert options.base_url.startswith("file://")
        assert options.base_url.endswith("/fixtures/")

    def test_url_is_kept(self):
        assert LoaderOptions(base_url="http://example.org/app/").base_url == "http://example.org/app/"

    def test_invalid_modules_mode(self):
        with pytest.raises(ValueError):
            LoaderOptions(modules="eager")

    def test_default_extension_is_known(self):
        options = LoaderOptions(default_extension=".mod", extensions=(".pym",))
        assert options.extensions == (".mod", ".pym")

    def test_from_env(self):
        environ = {
            "MODLOADER_BASE_URL": "http://example.org/env/",
            "MODLOADER_SOURCE_MAPS": "true",
            "MODLOADER_MODULES": "instantiate",
        }
        options = LoaderOptions.from_env(environ)
        assert options.base_url == "http://example.org/env/"
        assert options.source_maps is True
        assert options.modules == "instantiate"

    def test_from_env_overrides_win(self):
        options = LoaderOptions.from_env({"MODLOADER_SOURCE_MAPS": "1"}, source_maps=False)
        assert options.source_maps is False

    def test_from_env_ignores_empty_values(self):
        options = LoaderOptions.from_env({"MODLOADER_MODULES": ""})
        assert options.modules == "register"


class TestIOUtils:
    """File URL helpers"""

    def test_round_trip(self, fixtures_dir):
        url = path_to_base_url(fixtures_dir) + "test_a.pym"
        assert address_to_path(url) == fixtures_dir.resolve() / "test_a.pym"

    def test_plain_path(self):
        assert address_to_path("some/file.pym") == Path("some/file.pym")

    def test_other_scheme(self):
        with pytest.raises(ValueError):
            address_to_path("https://example.org/x.pym")
