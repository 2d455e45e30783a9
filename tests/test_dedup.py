from holosun_scan.dedup import DeduplicationStore, identity_key


def test_identity_key_is_case_and_whitespace_insensitive() -> None:
    first = {"company_name": "Acme Co", "contact_addr": "1 Main St"}
    second = {"company_name": " acme co ", "contact_addr": "1 MAIN ST  "}

    assert identity_key(first) == identity_key(second) == "acme co-1 main st"


def test_identity_key_treats_missing_fields_as_empty() -> None:
    assert identity_key({}) == "-"
    assert identity_key({"company_name": None, "contact_addr": "Somewhere"}) == "-somewhere"


def test_accept_rejects_repeat_without_side_effects() -> None:
    store = DeduplicationStore()

    assert store.accept({"company_name": "Acme Co", "contact_addr": "1 Main St"})
    assert not store.accept({"company_name": "ACME CO", "contact_addr": " 1 main st"})
    assert len(store) == 1


def test_partition_accounts_for_every_record() -> None:
    records = [
        {"company_name": "Alpha Optics", "contact_addr": "123 Main St"},
        {"company_name": "Beta Tactical", "contact_addr": "500 Market Ave"},
        {"company_name": "alpha optics", "contact_addr": "123 main st"},
        {"company_name": "Alpha Optics", "contact_addr": "9 Other Rd"},
        {"company_name": "Beta Tactical", "contact_addr": "500 Market Ave"},
    ]
    store = DeduplicationStore()

    accepted, duplicates = store.partition(records)

    assert len(accepted) + len(duplicates) == len(records)
    keys = [identity_key(record) for record in accepted]
    assert len(keys) == len(set(keys)) == 3
    assert accepted[0] is records[0]


def test_discard_and_clear_forget_keys() -> None:
    store = DeduplicationStore()
    dealer = {"company_name": "Gamma Guns", "contact_addr": "7 Elm"}
    store.accept(dealer)
    assert dealer in store

    store.discard([dealer])
    assert dealer not in store
    assert store.accept(dealer)

    store.clear()
    assert len(store) == 0
