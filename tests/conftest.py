import shutil
from pathlib import Path

import pytest

from larascope.parser import ParseFailure, SourceParser
from larascope.rules import RuleSetExtractor

FIXTURES = Path(__file__).parent / 'fixtures'


@pytest.fixture
def php():
    """Parse inline PHP; a syntax error fails the test"""
    parser = SourceParser()

    def parse(source):
        if not source.lstrip().startswith('<?php'):
            source = '<?php\n' + source
        result = parser.parse_source(source)
        assert not isinstance(result, ParseFailure), result
        return result

    return parse


@pytest.fixture
def extract_rules(php):
    """Extract a method's rule sets from a class body"""

    def extract(body, method='rules', header=''):
        source_file = php(header + '\nclass Sample\n{\n' + body + '\n}\n')
        return RuleSetExtractor(source_file, source_file.find_class('Sample')).extract(method)

    return extract


@pytest.fixture
def laravel_app(tmp_path):
    """Writable copy of the fixture Laravel project"""
    target = tmp_path / 'project'
    shutil.copytree(FIXTURES / 'laravel', target)
    return target
