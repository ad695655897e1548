"""
End-to-end tests of the load/save lifecycle through MemoryStorage.

Tests cover:
- New and existing records with a single encrypted attribute
- Multiple encrypted attributes
- Records encrypted with an older key
- Renamed storage fields
"""
import pytest

from attr_vault import KeyNotFoundError, MemoryStorage, VaultEngine, VaultSchema, vault_attr
from conftest import KEY1_ID, KEY2_ID


def assert_not_stored_in_clear(storage, secret):
    raw = secret.encode('utf-8')
    for row in storage.rows():
        for value in row.values():
            assert value != secret
            if isinstance(value, bytes):
                assert raw not in value


# --- Test New Records ---

class TestNewRecord:
    """Tests for records created with a single encrypted attribute."""

    def test_does_not_affect_other_attributes(self, items):
        """Test plain fields are stored as given."""
        not_secret = 'jimi hendrix was rather talented'
        s = items.create(not_secret=not_secret)
        items.reload(s)
        assert s.not_secret == not_secret
        assert [row['not_secret'] for row in items.rows()] == [not_secret]

    def test_encrypts_non_empty_values(self, items):
        """Test the plaintext is never stored."""
        secret = 'lady gaga? also rather talented'
        s = items.create(secret=secret)
        items.reload(s)
        assert s.secret == secret
        assert_not_stored_in_clear(items, secret)

    def test_stores_empty_values_as_empty(self, items):
        """Test empty strings stay empty."""
        s = items.create(secret='')
        items.reload(s)
        assert s.secret == ''
        assert s.secret_encrypted == b''
        assert s.secret_hmac == b''

    def test_stores_nil_values_as_nil(self, items):
        """Test None stays None."""
        s = items.create(secret=None)
        items.reload(s)
        assert s.secret is None
        assert s.get_field('secret_encrypted') is None

    def test_stores_the_key_id(self, items):
        """Test the current key id is stamped."""
        s = items.create(secret='it was professor plum with the wrench in the library')
        items.reload(s)
        assert s.key_id == KEY1_ID


# --- Test Existing Records ---

class TestExistingRecord:
    """Tests for records updated after creation."""

    def test_does_not_affect_other_attributes(self, items):
        """Test updating a plain field."""
        not_secret = 'soylent is not especially tasty'
        s = items.create()
        items.update(s, not_secret=not_secret)
        items.reload(s)
        assert s.not_secret == not_secret

    def test_encrypts_non_empty_values(self, items):
        """Test a value assigned on update is encrypted."""
        secret = 'soylent green is made of people'
        s = items.create()
        items.update(s, secret=secret)
        items.reload(s)
        assert s.secret == secret
        assert_not_stored_in_clear(items, secret)

    def test_stores_empty_values_as_empty(self, items):
        """Test overwriting a value with an empty string."""
        s = items.create(secret="darth vader is luke's father")
        items.update(s, secret='')
        items.reload(s)
        assert s.secret == ''
        assert s.secret_encrypted == b''

    def test_leaves_nil_values_as_nil(self, items):
        """Test overwriting a value with None."""
        s = items.create(secret='dr. crowe was dead all along')
        items.update(s, secret=None)
        items.reload(s)
        assert s.secret is None
        assert s.secret_encrypted is None
        assert s.secret_hmac is None

    def test_stores_the_key_id(self, items):
        """Test the key id is stamped on the first encrypted update."""
        s = items.create()
        assert s.get_field('key_id') is None
        items.update(s, secret='animal style')
        items.reload(s)
        assert s.key_id == KEY1_ID

    def test_reload_drops_unsaved_fields(self, items):
        """Test reload discards durable fields never written to the row."""
        s = items.create(secret='a')
        s.set_field('scratch', 'unsaved')
        items.reload(s)
        assert 'scratch' not in s.durable_fields()
        assert s.secret == 'a'

    def test_get_missing_record(self, items):
        """Test loading an unknown id."""
        with pytest.raises(KeyError):
            items.get(404)


# --- Test Multiple Attributes ---

class TestMultipleAttributes:
    """Tests for records with several encrypted attributes."""

    def test_does_not_clobber_other_attributes(self, items):
        """Test updating one attribute keeps the other."""
        secret1 = 'superman is really mild-mannered reporter clark kent'
        secret2 = 'batman is really millionaire playboy bruce wayne'
        s = items.create(secret=secret1)
        items.reload(s)
        assert s.secret == secret1
        items.update(s, other=secret2)
        items.reload(s)
        assert s.secret == secret1
        assert s.other == secret2


# --- Test Older Keys ---

class TestOlderKey:
    """Tests for records encrypted with a key that is no longer current."""

    @pytest.fixture
    def table(self):
        return {}

    @pytest.fixture
    def item1(self, partial_keyring, table):
        engine = VaultEngine(partial_keyring, [vault_attr('secret'), vault_attr('other')])
        return MemoryStorage(engine, table=table)

    @pytest.fixture
    def item2(self, full_keyring, table):
        engine = VaultEngine(full_keyring, [vault_attr('secret'), vault_attr('other')])
        return MemoryStorage(engine, table=table)

    def test_rewrites_using_current_key(self, item1, item2):
        """Test an updated attribute is written under the new key."""
        secret1 = 'mrs. doubtfire is really a man'
        secret2 = 'tootsie? also a man'
        record = item1.create(secret=secret1)
        assert record.key_id == KEY1_ID
        assert record.secret == secret1
        old_encrypted = record.secret_encrypted
        old_hmac = record.secret_hmac

        new_key_record = item2.get(record.id)
        item2.update(new_key_record, secret=secret2)
        item2.reload(new_key_record)

        assert new_key_record.key_id == KEY2_ID
        assert new_key_record.secret == secret2
        assert new_key_record.secret_encrypted != old_encrypted
        assert new_key_record.secret_hmac != old_hmac

    def test_rewrites_even_if_not_updated(self, item1, item2):
        """Test attributes untouched by the update are rotated too."""
        secret1 = 'the planet of the apes is really earth'
        secret2 = 'the answer is 42'
        record = item1.create(secret=secret1)
        assert record.key_id == KEY1_ID
        old_encrypted = record.secret_encrypted
        old_hmac = record.secret_hmac

        new_key_record = item2.get(record.id)
        item2.update(new_key_record, other=secret2)
        item2.reload(new_key_record)

        assert new_key_record.key_id == KEY2_ID
        assert new_key_record.secret == secret1
        assert new_key_record.secret_encrypted != old_encrypted
        assert new_key_record.secret_hmac != old_hmac
        assert new_key_record.other == secret2

    def test_rewrites_on_unrelated_field(self, item1, item2):
        """Test a plain-field update still converges on the current key."""
        record = item1.create(secret='a')
        old_encrypted = record.secret_encrypted
        old_hmac = record.secret_hmac

        new_key_record = item2.get(record.id)
        item2.update(new_key_record, not_secret='new value')
        item2.reload(new_key_record)

        assert new_key_record.key_id == KEY2_ID
        assert new_key_record.secret == 'a'
        assert new_key_record.secret_encrypted != old_encrypted
        assert new_key_record.secret_hmac != old_hmac
        assert new_key_record.not_secret == 'new value'

    def test_retired_key(self, item1, item2):
        """Test a record under a key missing from the keyring fails loudly."""
        record = item2.create(secret='a')
        with pytest.raises(KeyNotFoundError):
            item1.get(record.id)


# --- Test Renamed Fields ---

class TestRenamedFields:
    """Tests for custom storage field names."""

    def test_renamed_encrypted_and_hmac_fields(self, partial_keyring):
        """Test encrypted and hmac fields can be renamed."""
        engine = VaultEngine(partial_keyring, [
            vault_attr(
                'classified_info',
                encrypted_field='secret_encrypted',
                hmac_field='secret_hmac',
            )
        ])
        items = MemoryStorage(engine)
        secret = (
            "we've secretly replaced the fine coffee they usually serve "
            "with Folgers Crystals"
        )
        s = items.create(classified_info=secret)
        items.reload(s)
        assert s.classified_info == secret
        assert s.secret_encrypted != secret
        assert s.secret_hmac is not None

    def test_renamed_key_id_field(self, partial_keyring):
        """Test the key id field can be renamed."""
        schema = VaultSchema([vault_attr('secret')], key_field='alt_key_id')
        items = MemoryStorage(VaultEngine(partial_keyring, schema))
        secret = 'up up down down left right left right b a'
        s = items.create(secret=secret)
        items.reload(s)
        assert s.secret == secret
        assert s.secret_encrypted != secret
        assert s.secret_hmac is not None
        assert s.alt_key_id == KEY1_ID
        assert s.get_field('key_id') is None
