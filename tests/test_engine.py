import dataclasses
import unittest
from unittest import mock

from strictc import engine as engine_module
from strictc.config import AnalysisConfig
from strictc.engine import CancelToken, Engine, analyze_source
from strictc.evaluators import EVALUATORS
from strictc.evaluators.base import CANCEL_CHECK_INTERVAL
from strictc.model import Diagnostic, Severity, Span
from tests.support import analyze, context_for, only, rule_ids

SAMPLE = """\
/* Motor control. */
#include <stdint.h>

#define MOTOR_LIMIT 4

/* Raw speed value. */
typedef uint8_t myType_t;

static uint8_t g_speed = 0;

/* Runs one control step. */
void motor_step(uint8_t mode)
{
    switch (mode)
    {
        case 1:
            g_speed = g_speed > 2 ? g_speed > 3 ? 1 : 2 : 3;
            break;
    }
\tg_speed++;
}
"""


def failing_evaluator(ctx, rule):
    raise RuntimeError("bad tree")
    yield


def wild_evaluator(ctx, rule):
    yield Diagnostic(rule.id, rule.severity, Span(ctx.source.path, 0, 999, 1, 1, 1, 1000), "wild")


class SingleFileTests(unittest.TestCase):
    def test_spans_stay_inside_the_file(self):
        report = analyze(SAMPLE, path="motor.c")
        self.assertTrue(report.diagnostics)
        for diagnostic in report.diagnostics:
            self.assertTrue(diagnostic.span.within(len(SAMPLE)), diagnostic)
            self.assertEqual(diagnostic.path, "motor.c")
        self.assertNotIn("ENGINE.RULE_FAILURE", rule_ids(report.diagnostics))

    def test_analysis_is_repeatable(self):
        engine = Engine()
        first = engine.analyze_file("motor.c", SAMPLE)
        second = engine.analyze_file("motor.c", SAMPLE)
        self.assertEqual(first, second)

    def test_expected_findings(self):
        ids = rule_ids(analyze(SAMPLE, path="motor.c").diagnostics)
        self.assertEqual(ids.count("STRUCTURE.SWITCH_DEFAULT"), 1)
        self.assertIn("NAMING.TYPE_CASE", ids)
        self.assertIn("STRUCTURE.TERNARY_NESTING", ids)
        self.assertIn("WHITESPACE.TAB", ids)

    def test_unterminated_comment_still_reports(self):
        report = analyze("uint8_t  g_a; /* never closed\n", config=only("WHITESPACE.DOUBLE_SPACE"))
        self.assertEqual(rule_ids(report.diagnostics), ["WHITESPACE.DOUBLE_SPACE", "LEX.UNTERMINATED_COMMENT"])

    def test_accepts_bytes(self):
        report = analyze(b"\tuint8_t g_a;\n", config=only("WHITESPACE.TAB"))
        self.assertEqual(rule_ids(report.diagnostics), ["WHITESPACE.TAB"])
        self.assertEqual(report.counts["error"], 1)

    def test_parallel_rules_match_sequential(self):
        sequential = analyze(SAMPLE, path="motor.c")
        parallel = analyze(SAMPLE, path="motor.c", config=AnalysisConfig(parallel_rules=True))
        self.assertEqual(sequential.diagnostics, parallel.diagnostics)

    def test_analyze_source(self):
        report = analyze_source("demo.c", "\tuint8_t g_a;\n", only("WHITESPACE.TAB"))
        self.assertEqual(rule_ids(report.diagnostics), ["WHITESPACE.TAB"])


class RuleFailureTests(unittest.TestCase):
    def test_failing_rule_is_reported_and_isolated(self):
        with mock.patch.dict(EVALUATORS, {"WHITESPACE.TAB": failing_evaluator}):
            report = analyze("\tuint8_t g_a; \n", config=only("WHITESPACE.TAB", "WHITESPACE.TRAILING"))
        self.assertEqual(rule_ids(report.diagnostics), ["ENGINE.RULE_FAILURE", "WHITESPACE.TRAILING"])
        failure = report.diagnostics[0]
        self.assertEqual(
            failure.message,
            "rule 'WHITESPACE.TAB' failed and was disabled for this file: RuntimeError: bad tree",
        )
        self.assertEqual(failure.severity, Severity.WARNING)
        self.assertFalse(report.failed)

    def test_out_of_bounds_span_counts_as_failure(self):
        with mock.patch.dict(EVALUATORS, {"WHITESPACE.TAB": wild_evaluator}):
            report = analyze("uint8_t g_a;\n", config=only("WHITESPACE.TAB"))
        self.assertEqual(rule_ids(report.diagnostics), ["ENGINE.RULE_FAILURE"])
        self.assertIn("outside file", report.diagnostics[0].message)

    def test_failure_diagnostic_can_be_disabled(self):
        config = only("WHITESPACE.TAB")
        config.overrides["ENGINE.RULE_FAILURE"] = "off"
        with mock.patch.dict(EVALUATORS, {"WHITESPACE.TAB": failing_evaluator}):
            report = analyze("\tuint8_t g_a;\n", config=config)
        self.assertEqual(report.diagnostics, ())

    def test_whole_file_failure(self):
        real_build = engine_module.build

        def flaky(source):
            if source.path == "bad.c":
                raise RuntimeError("corrupt")
            return real_build(source)

        with mock.patch("strictc.engine.build", side_effect=flaky):
            run = Engine(only("WHITESPACE.TAB")).analyze_files([
                ("good.c", "\tuint8_t g_a;\n"),
                ("bad.c", "uint8_t g_b;\n"),
            ])
        good, bad = run.files
        self.assertFalse(good.failed)
        self.assertEqual(rule_ids(good.diagnostics), ["WHITESPACE.TAB"])
        self.assertTrue(bad.failed)
        self.assertEqual(rule_ids(bad.diagnostics), ["ENGINE.RULE_FAILURE"])
        self.assertIn("RuntimeError: corrupt", bad.diagnostics[0].message)
        self.assertEqual((run.summary.files_analyzed, run.summary.files_failed), (2, 1))


class BatchTests(unittest.TestCase):
    def test_reports_keep_input_order(self):
        items = [("file%d.c" % n, "\t" * (n % 2) + "uint8_t g_a;\n") for n in range(10)]
        run = Engine(only("WHITESPACE.TAB", jobs=4)).analyze_files(items)
        self.assertEqual([r.path for r in run.files], [path for path, _ in items])
        self.assertEqual(run.summary.files_analyzed, 10)
        self.assertEqual(run.summary.counts["error"], 5)
        self.assertEqual(len(run.diagnostics()), 5)

    def test_cancel_before_start(self):
        token = CancelToken()
        token.cancel()
        run = Engine(only("WHITESPACE.TAB")).analyze_files([("a.c", "\t;\n"), ("b.c", "\t;\n")], cancel=token)
        self.assertEqual(run.files, [])
        self.assertEqual((run.summary.files_analyzed, run.summary.files_cancelled), (0, 2))

    def test_cancel_during_run(self):
        token = CancelToken()

        def cancelling(ctx, rule):
            token.cancel()
            return iter(())

        with mock.patch.dict(EVALUATORS, {"NAMING.TYPE_SUFFIX": cancelling}):
            engine = Engine(only("NAMING.TYPE_SUFFIX", "WHITESPACE.TAB", jobs=1))
            run = engine.analyze_files([("a.c", "\t;\n"), ("b.c", "\t;\n")], cancel=token)
        self.assertEqual(run.files, [])
        self.assertEqual(run.summary.files_cancelled, 2)
        self.assertEqual(run.summary.total, 0)

    def test_evaluator_stops_early_when_cancelled(self):
        text = "uint8_t g_a; \n" * 2000
        stop = []
        ctx = dataclasses.replace(context_for(text), cancelled=lambda: bool(stop))
        rule = AnalysisConfig().build_registry()["WHITESPACE.TRAILING"]
        found = []
        for diagnostic in EVALUATORS["WHITESPACE.TRAILING"](ctx, rule):
            found.append(diagnostic)
            stop.append(True)
        self.assertEqual(len(found), CANCEL_CHECK_INTERVAL)

    def test_cancel_inside_an_evaluator_discards_the_file(self):
        token = CancelToken()
        trailing = EVALUATORS["WHITESPACE.TRAILING"]
        seen = []

        def cancelling(ctx, rule):
            for diagnostic in trailing(ctx, rule):
                seen.append(diagnostic)
                token.cancel()
                yield diagnostic

        with mock.patch.dict(EVALUATORS, {"WHITESPACE.TRAILING": cancelling}):
            engine = Engine(only("WHITESPACE.TRAILING"))
            run = engine.analyze_files([("big.c", "uint8_t g_a; \n" * 2000)], cancel=token)
        self.assertLess(len(seen), 2000)
        self.assertEqual(run.files, [])
        self.assertEqual(run.summary.files_cancelled, 1)


if __name__ == "__main__":
    unittest.main()
