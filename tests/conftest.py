from datetime import datetime, timezone

import orjson
import pytest

from attr_vault import Keyring, MemoryStorage, VaultEngine, vault_attr


KEY1_ID = '80a8571b-dc8a-44da-9b89-caee87e41ce2'
KEY1_VALUE = 'aFJDXs+798G7wgS/nap21LXIpm/Rrr39jIVo2m/cdj8='
KEY2_ID = '0a85781b-d8ac-4a4d-89b9-acee874e1ec2'
KEY2_VALUE = 'hUL1orBBRckZOuSuptRXYMV9lx5Qp54zwFUVwpwTpdk='


@pytest.fixture
def key1_data():
    return {
        'id': KEY1_ID,
        'value': KEY1_VALUE,
        'created_at': datetime(2014, 1, 1, tzinfo=timezone.utc).isoformat(),
    }


@pytest.fixture
def key2_data():
    return {
        'id': KEY2_ID,
        'value': KEY2_VALUE,
        'created_at': datetime(2014, 2, 1, tzinfo=timezone.utc).isoformat(),
    }


@pytest.fixture
def partial_keyring(key1_data):
    """Keyring holding only the older key."""
    return Keyring.load(orjson.dumps([key1_data]))


@pytest.fixture
def full_keyring(key1_data, key2_data):
    """Keyring where the newer key is current."""
    return Keyring.load(orjson.dumps([key1_data, key2_data]))


@pytest.fixture
def engine(partial_keyring):
    return VaultEngine(partial_keyring, [vault_attr('secret'), vault_attr('other')])


@pytest.fixture
def items(engine):
    """In-memory table with ``secret`` and ``other`` encrypted."""
    return MemoryStorage(engine)
