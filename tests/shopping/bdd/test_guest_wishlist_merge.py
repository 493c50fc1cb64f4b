"""BDD tests for absorbing a guest wishlist."""

from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/guest_wishlist_merge.feature")


@given(parsers.cfparse('the wishlist holds product "{product_ref}"'), target_fixture="wishlist")
def wishlist_holds(wishlist, product_ref):
    wishlist.add_item("catalog-item", product_ref)
    wishlist._events.clear()
    return wishlist


@when(parsers.cfparse('the guest session "{session_id}" submits wishlist products "{product_refs}"'))
def submit_products(wishlist, merge, session_id, product_refs):
    guest_items = [
        {"item_kind": "catalog-item", "product_ref": ref.strip()} for ref in product_refs.split(",")
    ]
    merge["results"] = wishlist.absorb_guest_items(guest_items, session_id)


@when(parsers.cfparse('the guest session "{session_id}" submits a wishlist record of kind "{item_kind}"'))
def submit_kind(wishlist, merge, session_id, item_kind):
    merge["results"] = wishlist.absorb_guest_items([{"item_kind": item_kind, "product_ref": "P1"}], session_id)


@then(parsers.cfparse("the wishlist has {count:d} items"))
def wishlist_has_items(wishlist, count):
    assert len(wishlist.items) == count


@then(parsers.cfparse('the wishlist record failed with "{reason}"'))
def wishlist_record_failed(merge, reason):
    assert [(r["status"], r["reason"]) for r in merge["results"]] == [("failed", reason)]
