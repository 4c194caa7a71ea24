"""ConfigLoaderクラスのテスト.

実際のPython設定ファイルを作成してロードする古典的テスト.
"""

import pytest

from optinfer.utils.config_loader import ConfigLoader


class TestConfigLoaderLoadConfig:
    """ConfigLoader.load_config()のテスト."""

    def test_load_basic_config(self, tmp_path):
        """基本的な設定ファイルを読み込める."""
        config_file = tmp_path / "config.py"
        config_file.write_text(
            'model_path = "models/classifier.pt"\niterations = 50\nuse_gpu = False\n',
            encoding="utf-8",
        )

        config = ConfigLoader.load_config(config_file)

        assert config["model_path"] == "models/classifier.pt"
        assert config["iterations"] == 50
        assert config["use_gpu"] is False

    def test_load_config_with_string_path(self, tmp_path):
        """文字列パスでも読み込める."""
        config_file = tmp_path / "config.py"
        config_file.write_text('model_path = "model.pt"\n', encoding="utf-8")

        config = ConfigLoader.load_config(str(config_file))
        assert config["model_path"] == "model.pt"

    def test_excludes_private_variables(self, tmp_path):
        """アンダースコアで始まる変数は除外される."""
        config_file = tmp_path / "config.py"
        config_file.write_text(
            '_private = "hidden"\npublic = "visible"\n',
            encoding="utf-8",
        )

        config = ConfigLoader.load_config(config_file)
        assert "_private" not in config
        assert config["public"] == "visible"

    def test_excludes_callable_and_modules(self, tmp_path):
        """関数・クラス・インポートしたモジュールは除外される."""
        config_file = tmp_path / "config.py"
        config_file.write_text(
            "import math\n"
            "value = 42\n"
            "def my_func():\n    return 1\n"
            "class Helper:\n    pass\n",
            encoding="utf-8",
        )

        config = ConfigLoader.load_config(config_file)
        assert config == {"value": 42}

    def test_nested_dict_and_list(self, tmp_path):
        """ネストした設定値を読み込める."""
        config_file = tmp_path / "config.py"
        config_file.write_text(
            "batch_sizes = [1, 8, 16]\n"
            'quantization = {"bits": 16, "quantize_weights": True}\n',
            encoding="utf-8",
        )

        config = ConfigLoader.load_config(config_file)
        assert config["batch_sizes"] == [1, 8, 16]
        assert config["quantization"] == {"bits": 16, "quantize_weights": True}

    def test_nonexistent_file_raises(self, tmp_path):
        """存在しないファイルでFileNotFoundErrorが発生する."""
        with pytest.raises(FileNotFoundError, match="設定ファイルが見つかりません"):
            ConfigLoader.load_config(tmp_path / "nonexistent.py")
