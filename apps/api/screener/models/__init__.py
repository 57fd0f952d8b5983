from .run import ScreeningRun
from .method1 import Method1Result
from .method2 import Method2Result
from .merged import MergedResult
from .parameters import ScreeningParameters
