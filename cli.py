#!/usr/bin/env python3
"""CLI for Test Run Reporter."""

import argparse
import json
import logging
import sys

import core
from testrun_reporter.config import ReporterConfig, load_inputs
from testrun_reporter.errors import ReporterError
from testrun_reporter.markdown import Icon, format_time
from testrun_reporter.models import TestStatus


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(levelname)s: %(message)s'
    )


def _patterns(values) -> list[str]:
    """Accept both repeated arguments and comma separated lists."""
    return [p.strip() for v in values for p in v.split(',') if p.strip()]


def cmd_report(args):
    """Run the full pipeline and publish results."""
    overrides = {
        'name': args.name,
        'path': ','.join(args.path) if args.path else None,
        'reporter': args.reporter,
        'working-directory': args.working_directory,
        'max-annotations': args.max_annotations,
        'list-suites': args.list_suites,
        'list-tests': args.list_tests,
    }
    try:
        inputs = load_inputs(args.config)
        inputs.update({k: str(v) for k, v in overrides.items() if v is not None})
        if args.only_summary:
            inputs['only-summary'] = 'true'
        config = ReporterConfig.from_inputs(inputs)
        outputs = core.run_reports(config)
    except ReporterError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.format == 'json':
        print(json.dumps(outputs, indent=2, default=str))
    else:
        for r in outputs['reports']:
            print(r['summary'])
            for err in r['decode_errors']:
                print(f"Failed to parse {err['file']}: {err['error']}", file=sys.stderr)
        print(f"\nConclusion: {outputs['conclusion']} "
              f"({outputs['passed']} passed, {outputs['failed']} failed, {outputs['skipped']} skipped)")
        if outputs.get('url'):
            print(f"Check run: {outputs['url']}")

    if outputs['conclusion'] == 'failure' and config.fail_on_error:
        return 1
    return 0


def cmd_parse(args):
    """Decode report files and print the unified results."""
    try:
        data = core.parse_reports(args.reporter, _patterns(args.paths), args.working_directory,
                                  parse_errors=not args.no_errors)
    except ReporterError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    results = data['results']
    if args.format == 'json':
        print(json.dumps({
            'results': [tr.to_dict() for tr in results],
            'errors': data['errors'],
        }, indent=2, default=str))
    else:
        _print_results(results)
        for err in data['errors']:
            print(f"Failed to parse {err['file']}: {err['error']}", file=sys.stderr)

    if not results and not data['errors']:
        return 1
    return 1 if any(tr.failed for tr in results) else 0


def _print_results(results):
    """Print a table of per-file counts."""
    if not results:
        print("No test results found")
        return

    width = max(len(tr.source_file) for tr in results)
    print(f"{'File':<{width}}  {'Result':<6}  {'Pass':>6}  {'Fail':>6}  {'Skip':>6}  {'Time':>10}")
    print(f"{'-'*width}  {'-'*6}  {'-'*6}  {'-'*6}  {'-'*6}  {'-'*10}")
    for tr in results:
        icon = Icon.fail if tr.failed else Icon.success
        print(f"{tr.source_file:<{width}}  {icon:<6}  {tr.passed:>6}  {tr.failed:>6}  {tr.skipped:>6}  "
              f"{format_time(tr.duration_seconds):>10}")

    failed = [(suite, tc) for tr in results for suite in tr.failed_suites
              for tc in suite.test_cases if tc.status == TestStatus.FAILED]
    if failed:
        print(f"\nFailed tests ({len(failed)}):")
        for suite, tc in failed:
            location = f" [{tc.resolved_path}:{tc.line}]" if tc.resolved_path else ""
            print(f"  - {suite.name} ► {tc.name}{location}")
            if tc.error and tc.error.message:
                print(f"      {tc.error.message.splitlines()[0][:200]}")


def cmd_render(args):
    """Render the markdown summary for local report files."""
    try:
        data = core.render_reports(
            args.reporter, _patterns(args.paths), args.working_directory,
            list_suites=args.list_suites, list_tests=args.list_tests,
            only_summary=args.only_summary, max_annotations=args.max_annotations,
        )
    except ReporterError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.format == 'json':
        print(json.dumps(data, indent=2, default=str))
    else:
        print(data['summary'])
        for err in data['errors']:
            print(f"Failed to parse {err['file']}: {err['error']}", file=sys.stderr)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(data['summary'])
        print(f"Report written to {args.output}", file=sys.stderr)

    return 1 if data['conclusion'] == 'failure' else 0


def cmd_list_reporters(_args):
    """List supported report formats."""
    for name in core.list_reporters():
        print(name)
    return 0


def _add_local_args(p):
    p.add_argument('paths', nargs='+', help='Report file glob patterns (prefix with ! to exclude)')
    p.add_argument('--reporter', '-r', required=True, help='Report format (see list-reporters)')
    p.add_argument('--working-directory', '-C', default='.', help='Directory the reports were produced in')
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')


def main():
    parser = argparse.ArgumentParser(description='Test Run Reporter')
    parser.add_argument('-v', '--verbose', action='store_true')

    sub = parser.add_subparsers(dest='command')

    # report (full pipeline, same inputs as the GitHub action)
    p = sub.add_parser('report', help='Create the test report and publish it')
    p.add_argument('--config', '-c', help='YAML file with inputs')
    p.add_argument('--name', '-n', help='Check run name')
    p.add_argument('--path', '-p', action='append', help='Report file glob pattern (repeatable)')
    p.add_argument('--reporter', '-r', help='Report format (see list-reporters)')
    p.add_argument('--working-directory', '-C', help='Directory the reports were produced in')
    p.add_argument('--max-annotations', type=int, help='Max number of annotations (0..50)')
    p.add_argument('--list-suites', choices=['all', 'failed'])
    p.add_argument('--list-tests', choices=['all', 'failed', 'none'])
    p.add_argument('--only-summary', action='store_true', help='Only render the summary header')
    p.add_argument('--format', '-f', choices=['text', 'json'], default='text')

    # parse
    p = sub.add_parser('parse', help='Decode report files and show results')
    _add_local_args(p)
    p.add_argument('--no-errors', action='store_true', help='Skip failure messages and source locations')

    # render
    p = sub.add_parser('render', help='Render the markdown summary of report files')
    _add_local_args(p)
    p.add_argument('--list-suites', choices=['all', 'failed'], default='all')
    p.add_argument('--list-tests', choices=['all', 'failed', 'none'], default='all')
    p.add_argument('--only-summary', action='store_true', help='Only render the summary header')
    p.add_argument('--max-annotations', type=int, default=10, help='Max number of annotations')
    p.add_argument('--output', '-o', help='Also write the markdown to this file')

    # list-reporters
    sub.add_parser('list-reporters', help='List supported report formats')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    cmds = {
        'report': cmd_report,
        'parse': cmd_parse,
        'render': cmd_render,
        'list-reporters': cmd_list_reporters,
    }
    return cmds[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
