"""
Example usage of RiakDocStore.

Expects a Riak node with a ``maps`` bucket type (datatype = map) and a
search index ``sumo_index`` associated with the bucket. Connection details
come from the RIAK_* environment variables (see load_config_from_env).
"""

from datetime import date

from dotenv import load_dotenv

from vertector_riakstore import (
    DocSchema,
    FieldType,
    RiakDocStore,
    SchemaField,
    load_config_from_env,
)
from vertector_riakstore.logging_utils import setup_production_logging


USERS = DocSchema("users", [
    SchemaField("id", FieldType.STRING, id=True),
    SchemaField("name"),
    SchemaField("age", FieldType.INTEGER),
    SchemaField("joined", FieldType.DATE),
    SchemaField("tags", FieldType.LIST),
    SchemaField("address", FieldType.DOCUMENT, fields=(
        SchemaField("city"),
        SchemaField("zip"),
    )),
])


def main():
    """Demonstrate RiakDocStore usage."""
    load_dotenv()
    setup_production_logging(level="INFO", format="text")

    with RiakDocStore.from_config(load_config_from_env(), schemas=[USERS]) as store:
        print("=== Example 1: Persist ===\n")

        ann = store.persist(USERS.new_doc({
            "name": "Ann",
            "age": 31,
            "joined": date(2023, 5, 1),
            "tags": ["admin", "ops"],
            "address": {"city": "Lisbon", "zip": "1100"},
        }))
        print(f"✓ Stored Ann under generated key {ann.get_field('id')}")

        store.persist(USERS.new_doc({"id": "bob", "name": "Bob", "age": 17}))
        print("✓ Stored Bob under key 'bob'")

        print("\n=== Example 2: Queries ===\n")

        # Search indexing is asynchronous; a fresh write may take a moment to show up
        adults = store.find_by("users", [("age", ">=", 18)])
        print(f"✓ Adults: {[d.get_field('name') for d in adults]}")

        lisbon = store.find_by("users", [("address.city", "Lisbon")])
        print(f"✓ Living in Lisbon: {[d.get_field('name') for d in lisbon]}")

        no_address = store.find_by("users", [("address.city", "null")])
        print(f"✓ Without a city: {[d.get_field('name') for d in no_address]}")

        bob = store.find_by("users", [("id", "bob")])
        print(f"✓ Point lookup: {bob[0].fields if bob else None}")

        print("\n=== Example 3: Bulk operations ===\n")

        everyone = store.find_all("users")
        print(f"✓ {len(everyone)} users in the bucket")

        deleted = store.delete_all("users")
        print(f"✓ Deleted {deleted} keys")

        print("\n=== Metrics ===\n")
        print(store.export_prometheus_metrics())


if __name__ == "__main__":
    main()
