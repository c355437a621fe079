from unittest.mock import patch

import pytest

from app.core.settings import FlowKeyCurve, KmsStoreType, Settings, SettingsValidationError


def test_defaults():
    with patch.dict("os.environ", {}, clear=True):
        s = Settings()

    assert s.NFT_TESTNET is True
    assert s.KMS_STORE_TYPE == KmsStoreType.MEMORY
    assert s.FLOW_KEY_CURVE == FlowKeyCurve.SECP256K1
    assert s.FLOW_NFT_CONTRACT_NAME == "TatumMultiNFT"
    assert s.node_urls("ETH", True) == []


def test_node_urls_prefer_testnet_specific_list():
    env = {
        "ETH_NODE_URLS": "https://main-1, https://main-2",
        "ETH_TESTNET_NODE_URLS": "https://sepolia-1",
        "FLOW_NODE_URLS": "https://rest-mainnet.onflow.org",
    }
    with patch.dict("os.environ", env, clear=True):
        s = Settings()

    assert s.node_urls("ETH", False) == ["https://main-1", "https://main-2"]
    assert s.node_urls("eth", True) == ["https://sepolia-1"]
    # no testnet list: falls back to the shared one
    assert s.node_urls("FLOW", True) == ["https://rest-mainnet.onflow.org"]


def test_enums_and_flags_are_parsed():
    env = {"NFT_TESTNET": "false", "FLOW_KEY_CURVE": "P256", "KMS_STORE_TYPE": "bogus"}
    with patch.dict("os.environ", env, clear=True):
        s = Settings()

    assert s.NFT_TESTNET is False
    assert s.FLOW_KEY_CURVE == FlowKeyCurve.P256
    assert s.KMS_STORE_TYPE == KmsStoreType.MEMORY


def test_remote_kms_requires_url():
    with patch.dict("os.environ", {"KMS_STORE_TYPE": "remote"}, clear=True):
        with pytest.raises(SettingsValidationError):
            Settings()


def test_invalid_log_level():
    with patch.dict("os.environ", {"NFT_LOG_LEVEL": "loud"}, clear=True):
        with pytest.raises(SettingsValidationError):
            Settings()


def test_to_dict_redacts_secrets():
    env = {"KMS_STORE_TYPE": "remote", "KMS_REMOTE_URL": "http://kms", "KMS_API_KEY": "secret"}
    with patch.dict("os.environ", env, clear=True):
        d = Settings().to_dict()

    assert d["KMS_API_KEY"] == "***REDACTED***"
    assert d["KMS_STORE_TYPE"] == "remote"
    assert d["KMS_REMOTE_URL"] == "http://kms"
