import sys
import unittest
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from blockflow.editor.summary import summarize_job, summarize_step, summarize_trigger


class SummaryTests(unittest.TestCase):
    def test_trigger_summary_labels_known_events(self):
        summary = summarize_trigger(
            {
                "name": "CI",
                "on": {
                    "workflow_dispatch": None,
                    "push": {"branches": ["main"], "paths": ["src/**"]},
                    "pull_request": {"branches": ["release"]},
                    "release": {"types": ["published"]},
                },
            }
        )

        self.assertEqual(summary.workflow_name, "CI")
        self.assertEqual(summary.events, ["Manual", "Push", "Pull Request"])
        self.assertEqual(summary.branches, ["main", "release"])
        self.assertEqual(summary.paths, ["src/**"])

    def test_trigger_without_event_map(self):
        summary = summarize_trigger({"on": "push"})
        self.assertEqual(summary.events, [])
        self.assertEqual(summary.workflow_name, "")

    def test_job_summary_reads_wrapped_preset(self):
        summary = summarize_job(
            {"jobs": {"deploy": {"runs-on": "ubuntu-latest", "needs": ["build"], "if": "github.ref == 'refs/heads/main'"}}}
        )
        self.assertEqual(summary.runs_on, ["ubuntu-latest"])
        self.assertEqual(summary.needs, ["build"])
        self.assertEqual(summary.conditions, ["github.ref == 'refs/heads/main'"])

    def test_step_summary(self):
        summary = summarize_step(
            {"uses": "actions/setup-node@v4", "with": {"node-version": 20, "cache": "npm"}}
        )
        self.assertEqual(summary.uses, ["actions/setup-node@v4"])
        self.assertEqual(summary.run, [])
        self.assertEqual(summary.with_params, {"node-version": 20, "cache": "npm"})


if __name__ == "__main__":
    unittest.main()
