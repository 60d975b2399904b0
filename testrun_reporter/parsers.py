"""Registry of the supported report formats."""

from enum import Enum

from .base_parser import ParseOptions, ReportParser
from .dart_json_parser import DartJsonParser
from .errors import ConfigurationError
from .junit_parser import JavaJunitParser, JestJunitParser
from .mocha_json_parser import MochaJsonParser
from .trx_parser import DotnetTrxParser


class Reporter(Enum):
    """Supported test reporters (value of the `reporter` input)."""
    DART_JSON = "dart-json"
    DOTNET_TRX = "dotnet-trx"
    FLUTTER_JSON = "flutter-json"
    JAVA_JUNIT = "java-junit"
    JEST_JUNIT = "jest-junit"
    MOCHA_JSON = "mocha-json"

    @classmethod
    def parse(cls, value: str) -> "Reporter":
        try:
            return cls((value or "").strip())
        except ValueError:
            supported = ", ".join(r.value for r in cls)
            raise ConfigurationError(
                f"Input variable 'reporter' is set to invalid value '{value}' (supported: {supported})"
            ) from None


_PARSERS = {
    Reporter.DART_JSON: lambda options: DartJsonParser(options, sdk="dart"),
    Reporter.DOTNET_TRX: DotnetTrxParser,
    Reporter.FLUTTER_JSON: lambda options: DartJsonParser(options, sdk="flutter"),
    Reporter.JAVA_JUNIT: JavaJunitParser,
    Reporter.JEST_JUNIT: JestJunitParser,
    Reporter.MOCHA_JSON: MochaJsonParser,
}


def get_parser(reporter, options: ParseOptions) -> ReportParser:
    """Create the decoder for a reporter id or Reporter value."""
    if not isinstance(reporter, Reporter):
        reporter = Reporter.parse(reporter)
    return _PARSERS[reporter](options)
