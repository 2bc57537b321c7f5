import unittest

from wishkeeper.models import Collection, Container, Entry


class RecordModelTests(unittest.TestCase):
    def test_collection_maps_folder_column(self):
        collection = Collection.from_dict(
            {"id": 7, "name": "Birthday", "folder_id": 3, "is_christmas": 1, "created_at": None}
        )

        self.assertEqual(collection.id, "7")
        self.assertEqual(collection.container_id, "3")
        self.assertTrue(collection.is_christmas)
        self.assertEqual(collection.created_at, "")
        self.assertEqual(collection.to_dict()["folder_id"], "3")

    def test_unassigned_collection(self):
        collection = Collection.from_dict({"id": "l1", "name": "Birthday", "folder_id": None})

        self.assertIsNone(collection.container_id)

    def test_entry_maps_store_columns(self):
        entry = Entry.from_dict(
            {"id": "e1", "wish_list_id": "l1", "name": "Kite", "is_bought": 1, "priority": None}
        )

        self.assertEqual(entry.collection_id, "l1")
        self.assertTrue(entry.bought)
        self.assertFalse(entry.starred)
        self.assertEqual(entry.priority, 0)
        self.assertIsNone(entry.link)

    def test_apply_returns_updated_copy(self):
        entry = Entry(id="e1", collection_id="l1", name="Kite", priority=2)

        updated = entry.apply({"is_bought": True, "priority": 0})

        self.assertTrue(updated.bought)
        self.assertEqual(updated.priority, 0)
        self.assertFalse(entry.bought)
        self.assertEqual(updated.name, "Kite")

    def test_container_apply(self):
        container = Container(id="f1", name="Family")

        self.assertEqual(container.apply({"name": "Friends"}).name, "Friends")
        self.assertEqual(Collection(id="l1", name="A").apply({"folder_id": "f1"}).container_id, "f1")


if __name__ == "__main__":
    unittest.main()
