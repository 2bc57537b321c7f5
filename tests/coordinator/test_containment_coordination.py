import asyncio
import unittest

from fake_store import FakeRecordStore
from wishkeeper.auth import AuthorizationContext
from wishkeeper.coordinator import MutationCoordinator
from wishkeeper.errors import AuthorizationError, ValidationError


async def settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)


class ContainmentCoordinationTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = FakeRecordStore()
        self.family = self.store.add_container("Family")
        self.birthday = self.store.add_collection("Birthday")
        self.christmas = self.store.add_collection("Christmas", container_id=self.family.id)
        self.wedding = self.store.add_collection("Wedding", container_id=self.family.id)
        self.store.add_entry(self.christmas.id, "Socks", 0)
        self.coordinator = MutationCoordinator(self.store)
        await self.coordinator.load()
        self.store.calls.clear()
        self.auth = AuthorizationContext("hunter2")
        self.auth.login("hunter2")

    def local(self, collection_id: str):
        for item in self.coordinator.collections():
            if item.id == collection_id:
                return item
        return None

    async def test_load_orders_lists_newest_first(self):
        self.assertEqual(
            [item.name for item in self.coordinator.collections()],
            ["Wedding", "Christmas", "Birthday"],
        )
        self.assertEqual([item.id for item in self.coordinator.unassigned_collections()], [self.birthday.id])

    async def test_assign_and_clear_container(self):
        assigned = await self.coordinator.assign_collection_to_container(self.birthday.id, self.family.id)

        self.assertTrue(assigned.ok)
        self.assertEqual(self.store.collections[self.birthday.id]["folder_id"], self.family.id)
        self.assertTrue(self.coordinator.is_expanded(self.family.id))
        self.assertIn(
            self.birthday.id,
            [item.id for item in self.coordinator.collections_in_container(self.family.id)],
        )

        cleared = await self.coordinator.clear_collection_container(self.birthday.id)

        self.assertTrue(cleared.ok)
        self.assertIsNone(self.local(self.birthday.id).container_id)
        self.assertIsNone(self.store.collections[self.birthday.id]["folder_id"])
        self.assertTrue(self.coordinator.is_expanded(self.family.id))
        self.assertEqual(
            self.store.calls_to("update_collection"),
            [
                (self.birthday.id, {"folder_id": self.family.id}),
                (self.birthday.id, {"folder_id": None}),
            ],
        )

    async def test_repeated_assign_and_clear_are_noops(self):
        same = await self.coordinator.assign_collection_to_container(self.christmas.id, self.family.id)
        unassigned = await self.coordinator.clear_collection_container(self.birthday.id)

        self.assertTrue(same.ok)
        self.assertTrue(unassigned.ok)
        self.assertEqual(self.store.calls, [])

    async def test_failed_assign_reconciles(self):
        self.store.fail_always("update_collection")

        result = await self.coordinator.assign_collection_to_container(self.birthday.id, self.family.id)

        self.assertFalse(result.ok)
        self.assertTrue(result.reconciled)
        self.assertIsNone(self.local(self.birthday.id).container_id)

    async def test_failed_reload_marks_session_stale(self):
        self.store.fail_always("update_collection")
        self.store.fail_always("list_collections")

        result = await self.coordinator.clear_collection_container(self.christmas.id)

        self.assertFalse(result.ok)
        self.assertFalse(result.reconciled)
        self.assertTrue(self.coordinator.is_stale)

        self.store.clear_failures()
        await self.coordinator.load()
        self.assertFalse(self.coordinator.is_stale)
        self.assertEqual(self.local(self.christmas.id).container_id, self.family.id)

    async def test_delete_container_needs_confirmation_when_it_has_members(self):
        plan = self.coordinator.plan_container_delete(self.family.id)
        self.assertTrue(plan.requires_confirmation)

        with self.assertRaises(ValidationError):
            await self.coordinator.delete_container(self.family.id, self.auth)

        self.assertEqual(self.store.calls, [])
        self.assertEqual(len(self.coordinator.containers()), 1)

    async def test_delete_container_detaches_members_then_deletes(self):
        self.coordinator.toggle_container(self.family.id)

        result = await self.coordinator.delete_container(self.family.id, self.auth, confirmed=True)

        self.assertTrue(result.ok)
        self.assertEqual([name for name, _ in self.store.calls], [
            "update_collection",
            "update_collection",
            "delete_container",
        ])
        self.assertEqual(self.coordinator.containers(), [])
        self.assertEqual(await self.store.list_containers(), [])
        self.assertTrue(all(item.container_id is None for item in self.coordinator.collections()))
        self.assertEqual(len(self.store.collections), 3)
        self.assertEqual(len(self.store.entries), 1)
        self.assertEqual(self.coordinator.expanded_container_ids(), [])

    async def test_failed_container_delete_reconciles_partial_state(self):
        self.store.fail_always("delete_container")

        result = await self.coordinator.delete_container(self.family.id, self.auth, confirmed=True)

        self.assertFalse(result.ok)
        self.assertTrue(result.reconciled)
        self.assertEqual([item.id for item in self.coordinator.containers()], [self.family.id])
        self.assertEqual(self.coordinator.collections_in_container(self.family.id), [])
        self.assertEqual(self.coordinator.collections(), await self.store.list_collections())

    async def test_list_joining_folder_during_delete_is_locked_and_detached(self):
        self.store.gate = asyncio.Event()
        create = asyncio.create_task(
            self.coordinator.create_collection("Anniversary", container_id=self.family.id)
        )
        await settle()
        delete = asyncio.create_task(
            self.coordinator.delete_container(self.family.id, self.auth, confirmed=True)
        )
        await settle()

        self.store.gate.set()
        self.store.gate = asyncio.Event()
        await settle()
        anniversary = (await create).record
        rename = asyncio.create_task(
            self.coordinator.rename_collection(anniversary.id, "Anniversary 2025")
        )
        await settle()

        self.assertNotIn(
            (anniversary.id, {"name": "Anniversary 2025"}),
            self.store.calls_to("update_collection"),
        )

        self.store.gate.set()
        deleted = await delete
        renamed = await rename

        self.assertTrue(deleted.ok)
        self.assertTrue(renamed.ok)
        self.assertEqual(
            self.store.calls_to("update_collection")[-1],
            (anniversary.id, {"name": "Anniversary 2025"}),
        )
        self.assertIn((anniversary.id, {"folder_id": None}), self.store.calls_to("update_collection"))
        self.assertIsNone(self.store.collections[anniversary.id]["folder_id"])
        self.assertIsNone(self.local(anniversary.id).container_id)
        self.assertEqual(self.coordinator.containers(), [])

    async def test_delete_container_requires_authorization(self):
        with self.assertRaises(AuthorizationError):
            await self.coordinator.delete_container(
                self.family.id, AuthorizationContext("hunter2"), confirmed=True
            )
        self.assertEqual(self.store.calls, [])

    async def test_create_rename_and_delete_empty_container(self):
        created = await self.coordinator.create_container("  Friends ")
        self.assertTrue(created.ok)
        self.assertEqual(created.record.name, "Friends")

        renamed = await self.coordinator.rename_container(created.record.id, "Pals")
        self.assertEqual(renamed.record.name, "Pals")
        self.assertEqual(self.store.containers[created.record.id]["name"], "Pals")

        deleted = await self.coordinator.delete_container(created.record.id, self.auth)
        self.assertTrue(deleted.ok)
        self.assertEqual([item.id for item in self.coordinator.containers()], [self.family.id])

    async def test_create_collection_in_container(self):
        result = await self.coordinator.create_collection(
            "Anniversary", container_id=self.family.id, is_christmas=True
        )

        self.assertTrue(result.ok)
        self.assertEqual(self.coordinator.collections()[0].id, result.record.id)
        self.assertEqual(result.record.container_id, self.family.id)
        self.assertTrue(result.record.is_christmas)
        self.assertTrue(self.coordinator.is_expanded(self.family.id))

    async def test_create_collection_rejects_blank_name_and_unknown_container(self):
        with self.assertRaises(ValidationError):
            await self.coordinator.create_collection(" ")
        with self.assertRaises(ValidationError):
            await self.coordinator.create_collection("Trip", container_id="missing")
        self.assertEqual(self.store.calls, [])

    async def test_rename_and_flag_collection(self):
        renamed = await self.coordinator.rename_collection(self.birthday.id, "Birthday 2025")
        flagged = await self.coordinator.set_christmas(self.birthday.id, True)

        self.assertTrue(renamed.ok)
        self.assertTrue(flagged.ok)
        self.assertEqual(
            self.store.calls_to("update_collection"),
            [
                (self.birthday.id, {"name": "Birthday 2025"}),
                (self.birthday.id, {"is_christmas": True}),
            ],
        )
        self.assertTrue(self.local(self.birthday.id).is_christmas)

    async def test_delete_collection_drops_entries_and_selection(self):
        await self.coordinator.select_collection(self.christmas.id)

        result = await self.coordinator.delete_collection(self.christmas.id, self.auth)

        self.assertTrue(result.ok)
        self.assertIsNone(self.local(self.christmas.id))
        self.assertIsNone(self.coordinator.selected_collection())
        self.assertEqual(self.coordinator.entries(self.christmas.id), [])
        self.assertEqual(self.store.entries, {})

    async def test_failed_collection_delete_restores_selection(self):
        await self.coordinator.select_collection(self.christmas.id)
        self.store.fail_always("delete_collection")

        result = await self.coordinator.delete_collection(self.christmas.id, self.auth)

        self.assertFalse(result.ok)
        self.assertIsNotNone(self.local(self.christmas.id))
        self.assertEqual(self.coordinator.selected_collection().id, self.christmas.id)


if __name__ == "__main__":
    unittest.main()
