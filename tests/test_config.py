import json
import logging

from lanelet_fusion.constants import FUSION_PARAMS_PATH, FusionConfig, load_fusion_params
from lanelet_fusion.logging_config import configure_logging


def test_default_config_matches_parameter_file():
    with open(FUSION_PARAMS_PATH, encoding="utf-8") as f:
        params = json.load(f)
    config = FusionConfig.default()
    for key, value in params.items():
        assert getattr(config, key) == value
    assert config == FusionConfig()


def test_from_params_ignores_unknown_keys():
    config = FusionConfig.from_params({"align_method": "ICP", "osm_file": "map.osm"})
    assert config.align_method == "ICP"
    assert config.split_tolerance == FusionConfig().split_tolerance


def test_load_fusion_params_from_custom_file(tmp_path):
    path = tmp_path / "params.json"
    path.write_text(json.dumps({"split_tolerance": 0.01}), encoding="utf-8")
    assert FusionConfig.from_params(load_fusion_params(str(path))).split_tolerance == 0.01


def test_configure_logging_writes_log_file(tmp_path):
    logger = configure_logging(tmp_path / "logs")
    try:
        logging.getLogger("lanelet_fusion.conflation").debug("split lanelet %s", 42)
        for handler in logger.handlers:
            handler.flush()
        text = (tmp_path / "logs" / "fusion.log").read_text(encoding="utf-8")
        assert "split lanelet 42" in text
        assert "| DEBUG |" in text
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)


def test_configure_logging_console_only():
    logger = configure_logging()
    try:
        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.INFO
    finally:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
