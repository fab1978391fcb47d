import contextlib
import io
import json
import os
import shutil
import tempfile
import unittest

from strictc.cli import EXIT_CLEAN, EXIT_FINDINGS, EXIT_USAGE, main


class CliTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix="strictc-cli-")
        self.addCleanup(shutil.rmtree, self.tmp)

    def write(self, name, text):
        path = os.path.join(self.tmp, name)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        return path

    def run_main(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = main(list(argv))
        return code, out.getvalue(), err.getvalue()

    # ----------------------------------------------------------
    def test_clean_file(self):
        path = self.write("demo.c", "/* Demo module. */\n")
        code, out, _ = self.run_main("analyze", "--fail-on", "info", path)
        self.assertEqual(code, EXIT_CLEAN)
        data = json.loads(out)
        self.assertEqual(data["summary"]["total"], 0)
        self.assertEqual(data["files"][0]["diagnostics"], [])

    def test_fail_on_threshold(self):
        path = self.write("demo.c", "/* Demo module. */   \n")
        code, _, _ = self.run_main("analyze", "--fail-on", "error", path)
        self.assertEqual(code, EXIT_CLEAN)
        code, _, _ = self.run_main("analyze", "--fail-on", "warning", path)
        self.assertEqual(code, EXIT_FINDINGS)

    def test_errors_fail_by_default(self):
        path = self.write("demo.c", "/* Demo module. */\n\tuint8_t g_a;\n")
        code, _, _ = self.run_main("analyze", path)
        self.assertEqual(code, EXIT_FINDINGS)

    def test_text_format(self):
        path = self.write("demo.c", "/* Demo module. */   \n")
        code, out, _ = self.run_main("analyze", "--format", "text", path)
        self.assertEqual(code, EXIT_CLEAN)
        self.assertEqual(
            out.splitlines(),
            [
                f"{path}:1:19: warning: trailing whitespace [WHITESPACE.TRAILING]",
                "1 file(s) analysed, 0 error, 1 warning, 0 info",
            ],
        )

    def test_json_to_file(self):
        path = self.write("demo.c", "/* Demo module. */   \n")
        report_path = os.path.join(self.tmp, "report.json")
        code, out, _ = self.run_main("analyze", "--out", report_path, path)
        self.assertEqual(code, EXIT_CLEAN)
        self.assertEqual(out, "")
        with open(report_path, encoding="utf-8") as f:
            data = json.load(f)
        diagnostic = data["files"][0]["diagnostics"][0]
        self.assertEqual(diagnostic["rule_id"], "WHITESPACE.TRAILING")
        self.assertEqual(diagnostic["tool"], "strictc")
        self.assertEqual(diagnostic["location"]["col_start"], 19)
        self.assertEqual(data["summary"]["counts"]["warning"], 1)

    def test_unreadable_file(self):
        good = self.write("demo.c", "/* Demo module. */\n")
        missing = os.path.join(self.tmp, "missing.c")
        code, out, err = self.run_main("analyze", good, missing)
        self.assertEqual(code, EXIT_USAGE)
        self.assertIn("could not read", err)
        self.assertEqual(json.loads(out)["summary"]["files_analyzed"], 1)

    def test_bad_config(self):
        config = self.write("strictc.yaml", "rules:\n  WHITESPACE.TAB: loud\n")
        path = self.write("demo.c", "/* Demo module. */\n")
        code, out, err = self.run_main("analyze", "--config", config, path)
        self.assertEqual(code, EXIT_USAGE)
        self.assertEqual(out, "")
        self.assertIn("configuration error", err)

    def test_config_disables_rule(self):
        config = self.write("strictc.yaml", "rules:\n  WHITESPACE.TAB: off\n")
        path = self.write("demo.c", "/* Demo module. */\n\tuint8_t g_a;\n")
        code, _, _ = self.run_main("analyze", "--config", config, path)
        self.assertEqual(code, EXIT_CLEAN)

    def test_invalid_jobs(self):
        path = self.write("demo.c", "/* Demo module. */\n")
        code, _, _ = self.run_main("analyze", "--jobs", "0", path)
        self.assertEqual(code, EXIT_USAGE)

    def test_rules_listing(self):
        code, out, _ = self.run_main("rules")
        self.assertEqual(code, EXIT_CLEAN)
        self.assertIn("WHITESPACE.TAB", out)
        self.assertIn("NAMING.TYPE_SUFFIX", out)


if __name__ == "__main__":
    unittest.main()
