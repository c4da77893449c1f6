from bazelproj.config import GlobalOptions, OptionKey
from bazelproj.details.build_label import BuildLabel
from bazelproj.details.rule_entry import RuleEntry
from bazelproj.errors import GenerationError
