import json
import logging
from pathlib import Path

import pytest

from larascope.config import Config
from larascope.diagnostics import AnalyzerErrorType, DiagnosticReport, ErrorCollector, ErrorEntry
from larascope.exceptions import ConfigurationError, LarascopeError


class TestConfig:

    def test_defaults(self, tmp_path):
        config = Config.from_dict({}, tmp_path)
        assert config.route_patterns == ['api/*']
        assert config.route_file_paths() == [tmp_path / 'routes' / 'api.php']
        assert config.resolved_cache_directory == tmp_path / 'storage' / 'app' / 'larascope' / 'cache'
        assert config.cache_enabled and not config.fail_on_error

    def test_camel_case_keys(self, tmp_path):
        config = Config.from_dict({
            'routePatterns': 'v2/*',
            'routeTable': 'routes.json',
            'excludedMethods': ['options'],
            'cacheDirectory': '/tmp/larascope-cache',
            'servers': [{'url': 'https://api.example.com'}],
            'failOnError': True,
        }, tmp_path)
        assert config.route_patterns == ['v2/*']
        assert config.route_table == tmp_path / 'routes.json'
        assert config.excluded_methods == ['OPTIONS']
        assert config.resolved_cache_directory == Path('/tmp/larascope-cache')
        assert config.fail_on_error

    def test_unknown_keys_are_warned_about(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger='larascope.config'):
            Config.from_dict({'colour': 'blue'}, tmp_path)
        assert 'colour' in caplog.text

    @pytest.mark.parametrize('data', [
        {'cacheEnabled': 'yes'},
        {'routePatterns': ['api/*', 3]},
        {'title': 42},
        {'servers': [{'description': 'no url'}]},
        {'customAuthSchemes': {'partner': 'apiKey'}},
    ])
    def test_invalid_values(self, tmp_path, data):
        with pytest.raises(ConfigurationError):
            Config.from_dict(data, tmp_path)

    def test_load(self, tmp_path):
        path = tmp_path / 'larascope.json'
        path.write_text(json.dumps({'title': 'Blog API', 'version': '2.1.0'}))
        config = Config.load(path, tmp_path)
        assert (config.title, config.version) == ('Blog API', '2.1.0')

    def test_load_rejects_non_objects(self, tmp_path):
        path = tmp_path / 'larascope.json'
        path.write_text('[1, 2]')
        with pytest.raises(ConfigurationError):
            Config.load(path)
        with pytest.raises(ConfigurationError):
            Config.load(tmp_path / 'missing.json')


class TestDiagnostics:

    def test_collector_builds_report(self):
        collector = ErrorCollector()
        collector.add_error('ControllerAnalyzer', 'boom', {'class': 'X'}, AnalyzerErrorType.ANALYSIS_ERROR)
        collector.add_warning('ResourceAnalyzer', 'missing', error_type=AnalyzerErrorType.MISSING_CLASS)
        report = collector.generate_report()
        assert report.total_errors == 1 and report.total_warnings == 1
        assert report.total_issues() == 2
        assert report.errors[0].trace
        assert report.warnings_by_context('ResourceAnalyzer')[0].message == 'missing'

    def test_fail_on_error_raises(self):
        collector = ErrorCollector(fail_on_error=True)
        collector.add_warning('A', 'only a warning')
        with pytest.raises(LarascopeError, match='Error in B: broken'):
            collector.add_error('B', 'broken')

    def test_report_round_trip(self):
        collector = ErrorCollector()
        collector.add_error('RouteLoader', 'bad record', {'index': 3}, AnalyzerErrorType.ROUTE_LOADING_ERROR)
        report = collector.generate_report()
        data = report.to_dict()
        assert data['summary']['total_errors'] == 1
        assert DiagnosticReport.from_dict(data) == report

    def test_counts_are_derived_from_lists(self):
        report = DiagnosticReport.from_dict({'summary': {'total_errors': 9}, 'errors': []})
        assert report.total_errors == 0
        assert not report.has_issues()

    def test_unknown_error_type_is_dropped(self):
        entry = ErrorEntry.from_dict({'context': 'X', 'message': 'm', 'errorType': 'nonsense'})
        assert entry.error_type is None
        assert entry.is_error()
