import pytest

from errors import NotFoundError
from payments import CryptoAddressesUpdate, PaymentMethodReconciler


@pytest.fixture
def reconciler(db):
    return PaymentMethodReconciler(db)


def stored(db, method_type):
    return db["paymentmethod"].find_one({"type": method_type})


def test_crypto_update_merges_with_existing_addresses(reconciler, db):
    reconciler.apply_update({"ethereum": "addrE"})

    reconciler.apply_update({"bitcoin": "addr1"})

    doc = stored(db, "Crypto")
    assert doc["credentials"] == {"ethereum": "addrE", "bitcoin": "addr1"}
    assert doc["active"] is True
    assert db["paymentmethod"].count_documents({"type": "Crypto"}) == 1


def test_empty_update_writes_nothing(reconciler, db):
    assert reconciler.apply_update({}) == []
    assert reconciler.apply_update({"bank": "", "bitcoin": ""}) == []
    assert db["paymentmethod"].count_documents({}) == 0


def test_each_group_gets_its_own_record(reconciler, db):
    written = reconciler.apply_update({
        "bank": "GB29 NWBK 6016 1331 9268 19",
        "paypal": "shop@example.com",
        "skype": "docushop.sales",
        "usdt": "TXYZ",
    })

    assert written == ["Bank", "PayPal", "Skype", "Crypto"]
    assert stored(db, "Bank")["credentials"] == {"account": "GB29 NWBK 6016 1331 9268 19"}
    assert stored(db, "PayPal")["credentials"] == {"email": "shop@example.com"}
    assert stored(db, "Skype")["credentials"] == {"id": "docushop.sales"}
    assert stored(db, "Crypto")["credentials"] == {"usdt": "TXYZ"}


def test_repeat_update_replaces_credentials_in_place(reconciler, db):
    reconciler.apply_update({"bank": "old-account"})
    reconciler.apply_update({"bank": "new-account"})

    assert db["paymentmethod"].count_documents({"type": "Bank"}) == 1
    doc = stored(db, "Bank")
    assert doc["credentials"] == {"account": "new-account"}
    assert doc["version"] == 2


def test_absent_groups_are_left_alone(reconciler, db):
    reconciler.apply_update({"bank": "acct", "skype": "sk"})
    reconciler.set_active("Skype", False)

    reconciler.apply_update({"paypal": "pp@example.com"})

    assert stored(db, "Bank")["version"] == 1
    assert stored(db, "Skype")["active"] is False


def test_inactive_methods_are_hidden_from_storefront(reconciler, db):
    reconciler.apply_update({"bank": "acct", "skype": "sk"})

    reconciler.set_active("skype", False)

    assert [m["type"] for m in reconciler.fetch_active()] == ["Bank"]
    assert stored(db, "Skype")["credentials"] == {"id": "sk"}
    assert {m["type"] for m in reconciler.list_all()} == {"Bank", "Skype"}


def test_update_reactivates_method(reconciler):
    reconciler.apply_update({"skype": "sk"})
    reconciler.set_active("Skype", False)

    reconciler.apply_update({"skype": "sk2"})

    [skype] = reconciler.fetch_active()
    assert skype["credentials"] == {"id": "sk2"}


def test_set_active_on_missing_type(reconciler):
    with pytest.raises(NotFoundError):
        reconciler.set_active("PayPal", True)
    with pytest.raises(NotFoundError):
        reconciler.set_active("Venmo", True)


def test_delete_method(reconciler, db):
    reconciler.apply_update({"paypal": "pp@example.com"})
    method_id = str(stored(db, "PayPal")["_id"])

    reconciler.delete(method_id)

    assert db["paymentmethod"].count_documents({}) == 0
    with pytest.raises(NotFoundError):
        reconciler.delete(method_id)


def test_malformed_records_are_skipped(reconciler, db):
    db["paymentmethod"].insert_one({"paypalEmail": "legacy@example.com", "active": True})
    reconciler.apply_update({"bank": "acct"})

    assert [m["type"] for m in reconciler.fetch_active()] == ["Bank"]


def test_crypto_addresses_default_to_empty_without_creating(reconciler, db):
    addresses = reconciler.get_crypto_addresses()

    assert addresses == {"bitcoin": "", "ethereum": "", "usdt": "", "updatedAt": None}
    assert db["paymentmethod"].count_documents({}) == 0


def test_crypto_addresses_share_the_crypto_payment_record(reconciler, db):
    reconciler.apply_update({"bitcoin": "bc1-old", "ethereum": "0xabc"})

    addresses = reconciler.replace_crypto_addresses(CryptoAddressesUpdate(bitcoin="bc1-new"))

    assert addresses["bitcoin"] == "bc1-new"
    assert addresses["ethereum"] == ""
    assert addresses["updatedAt"] is not None
    assert db["paymentmethod"].count_documents({"type": "Crypto"}) == 1
    [crypto] = reconciler.fetch_active()
    assert crypto["credentials"]["bitcoin"] == "bc1-new"


def test_blank_crypto_addresses_never_create_a_record(reconciler, db):
    addresses = reconciler.replace_crypto_addresses(CryptoAddressesUpdate())

    assert (addresses["bitcoin"], addresses["ethereum"], addresses["usdt"]) == ("", "", "")
    assert db["paymentmethod"].count_documents({}) == 0
    assert reconciler.fetch_active() == []


def test_clearing_crypto_addresses_hides_crypto_option(reconciler, db):
    reconciler.apply_update({"bitcoin": "bc1", "bank": "acct"})

    reconciler.replace_crypto_addresses(CryptoAddressesUpdate(bitcoin="", usdt=""))

    assert [m["type"] for m in reconciler.fetch_active()] == ["Bank"]
    doc = stored(db, "Crypto")
    assert doc["active"] is False
    assert doc["credentials"] == {"bitcoin": "", "ethereum": "", "usdt": ""}
