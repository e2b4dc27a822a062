"""Command line entry point"""

import json
import logging
import os
import sys
from pathlib import Path

from .config import Config
from .exceptions import ConfigurationError, LarascopeError, RouteTableError
from .pipeline import Pipeline

logger = logging.getLogger(__name__)

CONFIG_FILE = 'larascope.json'


def main(argv=None):
    """Main execution function"""
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = '-v' in args or '--verbose' in args
    args = [a for a in args if a not in ('-v', '--verbose')]

    if not args:
        print("Usage: larascope <laravel_project_path> [output_file] [-v]")
        print("  output_file: defaults to openapi.json")
        return 1

    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format='%(levelname)s %(name)s: %(message)s')

    project_path = args[0]
    output_file = args[1] if len(args) > 1 else 'openapi.json'

    if not os.path.exists(project_path):
        print(f"Error: Project path '{project_path}' does not exist")
        return 1

    config_path = Path(project_path) / CONFIG_FILE
    try:
        if config_path.exists():
            config = Config.load(config_path, project_root=project_path)
        else:
            config = Config(project_root=Path(project_path))
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1

    print(f"Analyzing Laravel project at: {project_path}")
    print("=" * 60)

    try:
        spec, report = Pipeline(config).run()
    except RouteTableError as e:
        print(f"Error: route table could not be loaded: {e}")
        return 2
    except LarascopeError as e:
        # strict mode aborts on the first recorded error
        print(f"Error: {e}")
        return 2

    with open(output_file, 'w', encoding='utf-8') as f:
        json.dump(spec.to_dict(), f, indent=2, ensure_ascii=False)

    operations = sum(1 for _ in spec.operations())
    print(f"\n✓ Documentation generated: {output_file}")
    print(f"✓ Paths: {len(spec.paths)}, operations: {operations}, schemas: {len(spec.schemas)}")
    print(f"✓ Diagnostics: {report.total_errors} errors, {report.total_warnings} warnings")
    for entry in report.errors:
        print(f"  ERROR [{entry.context}] {entry.message}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
