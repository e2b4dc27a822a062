"""
End-to-end analysis run.

Loads the route table, analyzes every route's controller, validation and
resources, then assembles the OpenAPI document. Per-route failures become
diagnostics; only an unusable route table stops the run.
"""

import logging
from typing import Dict, List, Optional, Tuple

from .auth import AuthenticationAnalyzer, AuthenticationDetector
from .cache import DocumentationCache
from .conditions import ConditionClassifier
from .config import Config
from .controllers import ControllerAnalyzer
from .diagnostics import AnalyzerErrorType, DiagnosticReport, ErrorCollector
from .enums import EnumAnalyzer
from .exceptions import RouteTableError
from .form_requests import FormRequestAnalyzer
from .generator import RouteAnalysis, SpecAssembler
from .locator import ClassLocator
from .openapi import OpenApiSpec
from .parser import SourceParser
from .resources import ResourceAnalyzer, ResourceInfo
from .routes import RouteFileReader, RouteInfo, RouteLoader

logger = logging.getLogger(__name__)

MAX_RESOURCE_DEPTH = 5


class Pipeline:
    """Wire the analyzers together for one project"""

    def __init__(self, config: Config, error_collector: Optional[ErrorCollector] = None):
        self.config = config
        self.error_collector = error_collector or ErrorCollector(fail_on_error=config.fail_on_error)
        self.parser = SourceParser()
        self.locator = ClassLocator(config.project_root, self.parser)
        self.cache = DocumentationCache(config.resolved_cache_directory, enabled=config.cache_enabled,
                                        error_collector=self.error_collector)
        self.classifier = ConditionClassifier()
        self.enum_analyzer = EnumAnalyzer(self.locator)
        self.form_request_analyzer = FormRequestAnalyzer(self.locator, self.cache, self.enum_analyzer,
                                                         self.error_collector, self.classifier)
        self.resource_analyzer = ResourceAnalyzer(self.locator, self.cache, self.error_collector)
        self.controller_analyzer = ControllerAnalyzer(self.locator, self.form_request_analyzer, self.enum_analyzer,
                                                      self.error_collector, self.classifier)
        self.route_loader = RouteLoader(config.route_patterns, config.excluded_methods, self.error_collector)
        self.authentication_analyzer = AuthenticationAnalyzer(AuthenticationDetector(config.custom_auth_schemes))
        self.assembler = SpecAssembler(title=config.title, version=config.version,
                                       description=config.description, servers=config.servers)
        self._resources: Dict[str, ResourceInfo] = {}

    def run(self) -> Tuple[OpenApiSpec, DiagnosticReport]:
        routes = self.load_routes()
        logger.info("Analyzing %d routes", len(routes))
        analyses: List[RouteAnalysis] = []
        for route in routes:
            try:
                analyses.append(self.analyze_route(route))
            except Exception as e:
                if self.config.fail_on_error:
                    raise
                self.error_collector.add_error('Pipeline', f"Failed to analyze {route.uri}: {e}",
                                               {'uri': route.uri, 'controller': route.controller,
                                                'method': route.method},
                                               AnalyzerErrorType.ANALYSIS_ERROR)
                analyses.append(RouteAnalysis(route=route))

        auth = self.authentication_analyzer.analyze([a.route for a in analyses])
        spec = self.assembler.assemble(analyses, auth)
        report = self.error_collector.generate_report()
        logger.info("Generated %d paths with %d errors and %d warnings", len(spec.paths),
                    report.total_errors, report.total_warnings)
        return spec, report

    def load_routes(self) -> List[RouteInfo]:
        """Route table file when configured, otherwise the route files"""
        if self.config.route_table is not None:
            return self.route_loader.load_table_file(self.config.route_table)

        files = self.config.route_file_paths()
        if not any(path.exists() for path in files):
            raise RouteTableError('No route files found: ' + ', '.join(str(p) for p in files))
        reader = RouteFileReader(self.parser, self.error_collector)
        records = self.cache.remember_routes(files, lambda: reader.read_files(files))
        return self.route_loader.load_records(records)

    def analyze_route(self, route: RouteInfo) -> RouteAnalysis:
        analysis = RouteAnalysis(route=route)
        if not route.controller or not route.method:
            return analysis
        controller = self.controller_analyzer.analyze(route.controller, route.method)
        analysis.controller = controller
        if controller.form_request:
            analysis.form_request = self.form_request_analyzer.analyze(controller.form_request)

        roots = [controller.resource]
        if controller.pagination is not None:
            roots.append(controller.pagination.resource)
        if controller.fractal is not None:
            roots.append(controller.fractal.transformer)
        for fqcn in roots:
            if fqcn:
                self.collect_resources(fqcn, analysis.resources)
        return analysis

    def collect_resources(self, fqcn: str, into: Dict[str, ResourceInfo], depth: int = 0) -> None:
        """Analyze a resource and, recursively, the resources it nests"""
        if fqcn in into or depth > MAX_RESOURCE_DEPTH:
            return
        if fqcn not in self._resources:
            self._resources[fqcn] = self.resource_analyzer.analyze(fqcn)
        info = self._resources[fqcn]
        into[fqcn] = info
        for nested in info.nested_resources:
            self.collect_resources(nested, into, depth + 1)
