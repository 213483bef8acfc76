import sys
import unittest
from pathlib import Path

from pydantic import ValidationError

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from blockflow.editor.assembler import assemble
from blockflow.editor.blocks import Block, BlockKind
from blockflow.editor.nodes import NodeStore
from blockflow.editor.notifier import ChangeNotifier


def trigger(name="CI", **config):
    return Block(name=name, kind=BlockKind.TRIGGER, config=config or {"name": name})


def job(name="Build", job_ref=None, **config):
    return Block(name=name, kind=BlockKind.JOB, job_ref=job_ref, config=config)


def step(name="Checkout", job_ref=None, **config):
    return Block(name=name, kind=BlockKind.STEP, job_ref=job_ref, config=config)


class NodeStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = NodeStore()

    def test_ci_scenario_assembles_expected_document(self):
        self.store.add_node(
            BlockKind.TRIGGER,
            Block(
                name="CI",
                kind=BlockKind.TRIGGER,
                config={"name": "CI", "on": {"push": {"branches": ["main"]}}},
            ),
        )
        build = self.store.add_node(BlockKind.JOB, job(**{"runs-on": "ubuntu-latest"}))
        self.store.add_node(
            BlockKind.STEP,
            Block(
                name="Checkout",
                kind=BlockKind.STEP,
                config={"name": "Checkout", "uses": "actions/checkout@v4"},
            ),
            build.id,
        )

        self.assertEqual(
            assemble(self.store.to_blocks()),
            {
                "name": "CI",
                "on": {"push": {"branches": ["main"]}},
                "jobs": {
                    "job1": {
                        "runs-on": "ubuntu-latest",
                        "steps": [{"name": "Checkout", "uses": "actions/checkout@v4"}],
                    }
                },
            },
        )

    def test_second_trigger_is_ignored(self):
        first = self.store.add_node(BlockKind.TRIGGER, trigger("CI"))
        second = self.store.add_node(BlockKind.TRIGGER, trigger("Nightly"))

        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual([n.block.name for n in self.store.triggers], ["CI"])

    def test_trigger_never_carries_job_ref(self):
        node = self.store.add_node(BlockKind.TRIGGER, Block(name="CI", kind=BlockKind.TRIGGER, job_ref="x"))
        self.assertIsNone(node.block.job_ref)

    def test_jobs_get_distinct_auto_ids_interleaved_with_steps(self):
        first = self.store.add_node(BlockKind.JOB, job("Build"))
        self.store.add_node(BlockKind.STEP, step("Checkout"), first.id)
        second = self.store.add_node(BlockKind.JOB, job("Test"))
        self.store.add_node(BlockKind.STEP, step("Run tests"), second.id)

        self.assertEqual(first.block.job_ref, "job1")
        self.assertEqual(second.block.job_ref, "job2")
        self.assertEqual([s.block.job_ref for s in self.store.steps], ["job1", "job2"])

    def test_explicit_job_ref_is_kept_unless_taken(self):
        build = self.store.add_node(BlockKind.JOB, job("Build", job_ref="build"))
        clash = self.store.add_node(BlockKind.JOB, job("Build again", job_ref="build"))

        self.assertEqual(build.block.job_ref, "build")
        self.assertEqual(clash.block.job_ref, "job2")

    def test_order_is_dense_per_collection(self):
        self.store.add_node(BlockKind.TRIGGER, trigger())
        jobs = [self.store.add_node(BlockKind.JOB, job(f"Job {i}")) for i in range(3)]

        self.assertEqual([j.order for j in self.store.jobs], [0, 1, 2])
        self.store.delete_node(jobs[1].id)
        self.assertEqual([j.order for j in self.store.jobs], [0, 1])
        self.assertEqual(self.store.triggers[0].order, 0)

    def test_step_links_by_job_ref_when_no_parent_given(self):
        build = self.store.add_node(BlockKind.JOB, job("Build", job_ref="build"))
        node = self.store.add_node(BlockKind.STEP, step("Checkout", job_ref="build"))
        self.assertEqual(node.parent_id, build.id)

    def test_step_with_missing_parent_is_detached(self):
        with self.assertLogs("blockflow.editor.nodes", level="WARNING"):
            node = self.store.add_node(BlockKind.STEP, step("Checkout", job_ref="old"), "nope")
        self.assertIsNone(node.parent_id)
        self.assertEqual(node.block.job_ref, "old")

    def test_detached_step_stays_out_of_renumbered_jobs(self):
        self.store.load_blocks(
            [
                trigger(),
                job("Build", job_ref="build"),
                job("Test", job_ref="test"),
                job("Deploy", job_ref="deploy"),
                step("Orphan", job_ref="job2", run="x"),
            ]
        )
        orphan = self.store.steps[0]
        self.assertIsNone(orphan.parent_id)

        with self.assertLogs("blockflow.editor.nodes", level="WARNING"):
            self.store.delete_node(self.store.jobs[0].id)

        blocks = self.store.to_blocks()
        self.assertEqual(assemble(blocks)["jobs"], {"job1": {}, "job2": {}})
        self.assertEqual(blocks[-1].name, "Orphan")
        self.assertEqual(orphan.block.job_ref, "")
        self.assertIsNone(orphan.parent_id)

    def test_renaming_job_to_a_detached_steps_ref_does_not_adopt_it(self):
        build = self.store.add_node(BlockKind.JOB, job("Build"))
        with self.assertLogs("blockflow.editor.nodes", level="WARNING"):
            orphan = self.store.add_node(BlockKind.STEP, step("Orphan", job_ref="old"), "nope")

        self.store.rename_job(build.id, "old")

        self.assertEqual(orphan.block.job_ref, "")
        self.assertEqual(assemble(self.store.to_blocks())["jobs"], {"old": {}})

    def test_job_add_strips_embedded_steps(self):
        with self.assertLogs("blockflow.editor.nodes", level="WARNING"):
            node = self.store.add_node(
                BlockKind.JOB,
                job("Build", **{"runs-on": "ubuntu-latest", "steps": [{"run": "make"}]}),
            )
        self.assertEqual(node.block.config, {"runs-on": "ubuntu-latest"})

    def test_deleting_job_removes_its_steps(self):
        self.store.add_node(BlockKind.TRIGGER, trigger())
        build = self.store.add_node(BlockKind.JOB, job())
        self.store.add_node(BlockKind.STEP, step(), build.id)

        self.assertTrue(self.store.delete_node(build.id))

        blocks = self.store.to_blocks()
        self.assertEqual([b.kind for b in blocks], [BlockKind.TRIGGER])
        self.assertEqual(self.store.steps, ())

    def test_deleting_job_rederives_ids_and_cascades(self):
        first = self.store.add_node(BlockKind.JOB, job("Lint"))
        second = self.store.add_node(BlockKind.JOB, job("Test"))
        test_step = self.store.add_node(BlockKind.STEP, step("pytest"), second.id)

        self.store.delete_node(first.id)

        self.assertEqual(second.block.job_ref, "job1")
        self.assertEqual(test_step.block.job_ref, "job1")
        self.assertEqual(test_step.parent_id, second.id)
        self.assertEqual(test_step.order, 0)

    def test_delete_unknown_node(self):
        self.assertFalse(self.store.delete_node("missing"))

    def test_update_node_data_keeps_placement(self):
        build = self.store.add_node(BlockKind.JOB, job("Build"))
        checkout = self.store.add_node(BlockKind.STEP, step("Checkout"), build.id)

        updated = self.store.update_node_data(
            checkout.id, {"name": "Fetch", "config": {"uses": "actions/checkout@v4"}}
        )

        self.assertEqual(updated.block.name, "Fetch")
        self.assertEqual(updated.block.config, {"uses": "actions/checkout@v4"})
        self.assertEqual(updated.parent_id, build.id)
        self.assertEqual(updated.order, 0)

    def test_update_node_data_does_not_cascade_job_ref(self):
        build = self.store.add_node(BlockKind.JOB, job("Build"))
        checkout = self.store.add_node(BlockKind.STEP, step("Checkout"), build.id)

        self.store.update_node_data(build.id, {"jobRef": "build"})

        self.assertEqual(build.block.job_ref, "build")
        self.assertEqual(checkout.block.job_ref, "job1")

    def test_update_node_data_ignores_kind_change(self):
        build = self.store.add_node(BlockKind.JOB, job("Build"))
        with self.assertLogs("blockflow.editor.nodes", level="WARNING"):
            self.store.update_node_data(build.id, {"kind": "step"})
        self.assertEqual(build.block.kind, BlockKind.JOB)

    def test_invalid_update_leaves_node_unchanged(self):
        build = self.store.add_node(BlockKind.JOB, job("Build"))
        with self.assertRaises(ValidationError):
            self.store.update_node_data(build.id, {"name": ""})
        self.assertEqual(build.block.name, "Build")

    def test_update_unknown_node(self):
        self.assertIsNone(self.store.update_node_data("missing", {"name": "x"}))

    def test_rename_job_cascades_to_steps(self):
        build = self.store.add_node(BlockKind.JOB, job("Build"))
        a = self.store.add_node(BlockKind.STEP, step("A"), build.id)
        b = self.store.add_node(BlockKind.STEP, step("B"), build.id)

        self.assertTrue(self.store.rename_job(build.id, "compile"))

        self.assertEqual(build.block.job_ref, "compile")
        self.assertEqual([a.block.job_ref, b.block.job_ref], ["compile", "compile"])
        self.assertEqual(self.store.cascade_job_rename(build.id, "make"), 2)
        self.assertEqual(a.block.job_ref, "make")

    def test_rename_rejects_non_job(self):
        build = self.store.add_node(BlockKind.JOB, job("Build"))
        checkout = self.store.add_node(BlockKind.STEP, step(), build.id)
        self.assertFalse(self.store.rename_job(checkout.id, "x"))

    def test_move_job_rederives_ids(self):
        lint = self.store.add_node(BlockKind.JOB, job("Lint"))
        test = self.store.add_node(BlockKind.JOB, job("Test"))
        pytest_step = self.store.add_node(BlockKind.STEP, step("pytest"), test.id)

        self.assertTrue(self.store.move_node(test.id, 0))

        self.assertEqual([j.block.name for j in self.store.jobs], ["Test", "Lint"])
        self.assertEqual(test.block.job_ref, "job1")
        self.assertEqual(lint.block.job_ref, "job2")
        self.assertEqual(pytest_step.block.job_ref, "job1")

    def test_move_clamps_index(self):
        a = self.store.add_node(BlockKind.JOB, job("A"))
        self.store.add_node(BlockKind.JOB, job("B"))
        self.store.move_node(a.id, 99)
        self.assertEqual([j.block.name for j in self.store.jobs], ["B", "A"])

    def test_get_all_nodes_is_collection_ordered(self):
        build = self.store.add_node(BlockKind.JOB, job())
        self.store.add_node(BlockKind.STEP, step(), build.id)
        self.store.add_node(BlockKind.TRIGGER, trigger())

        kinds = [n.kind for n in self.store.get_all_nodes()]
        self.assertEqual(kinds, [BlockKind.TRIGGER, BlockKind.JOB, BlockKind.STEP])

    def test_load_blocks_and_clear(self):
        self.store.load_blocks(
            [
                trigger(),
                job("Build", job_ref="build"),
                step("Checkout", job_ref="build"),
            ]
        )
        self.assertEqual(self.store.steps[0].parent_id, self.store.jobs[0].id)

        self.store.clear()
        self.assertTrue(self.store.is_empty())


class NodeStoreNotificationTests(unittest.TestCase):
    def test_burst_of_mutations_yields_one_notification(self):
        notifier = ChangeNotifier()
        store = NodeStore(notifier)
        received = []
        notifier.subscribe(received.append)

        store.add_node(BlockKind.TRIGGER, trigger())
        build = store.add_node(BlockKind.JOB, job())
        store.add_node(BlockKind.STEP, step(), build.id)

        self.assertEqual(received, [])
        self.assertTrue(notifier.pending)
        self.assertTrue(notifier.flush())
        self.assertFalse(notifier.flush())

        self.assertEqual(len(received), 1)
        self.assertEqual([b.name for b in received[0]], ["CI", "Build", "Checkout"])

    def test_notification_carries_copies(self):
        notifier = ChangeNotifier()
        store = NodeStore(notifier)
        received = []
        notifier.subscribe(received.append)

        node = store.add_node(BlockKind.JOB, job("Build", **{"runs-on": "x"}))
        notifier.flush()
        received[0][0].config["runs-on"] = "changed"

        self.assertEqual(node.block.config["runs-on"], "x")


if __name__ == "__main__":
    unittest.main()
