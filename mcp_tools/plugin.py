import importlib
import inspect
import logging
import pkgutil
import time
from contextlib import contextmanager
from typing import Dict, List, Type, Set, Optional, Union, Iterable

from mcp_tools.interfaces import ToolInterface
from mcp_tools.constants import Ecosystem, OSType
from mcp_tools.types import Tool

logger = logging.getLogger(__name__)


@contextmanager
def time_plugin_operation(name: str):
    start_time = time.time()
    logger.info(f"Starting {name}...")
    try:
        yield
    finally:
        duration = time.time() - start_time
        logger.info(f"{name} completed in {duration:.2f}s")


def _disabled_tool_names() -> Set[str]:
    """Read the comma separated DISABLED_TOOLS setting."""
    from config import env_manager

    raw = env_manager.get_setting("disabled_tools", "") or ""
    return {name.strip() for name in raw.split(",") if name.strip()}


class PluginRegistry:
    """Registry for MCP tool plugins.

    This class handles the registration, discovery, and management of tool plugins
    that implement the ToolInterface.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(PluginRegistry, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize the plugin registry"""
        self.tools: Dict[str, Type[ToolInterface]] = {}
        self.instances: Dict[str, ToolInterface] = {}
        self.discovered_paths: Set[str] = set()
        self.tool_sources: Dict[str, str] = {}
        self.tool_ecosystems: Dict[str, Optional[str]] = {}
        self.tool_os: Dict[str, Optional[str]] = {}

    def register_tool(
        self,
        tool_class: Type[ToolInterface],
        source: str = "code",
        ecosystem: Optional[Union[str, Ecosystem]] = None,
        os_type: Optional[Union[str, OSType]] = None,
    ) -> Optional[Type[ToolInterface]]:
        """Register a tool class.

        Args:
            tool_class: A class that implements ToolInterface
            source: Source of the tool
            ecosystem: Ecosystem the tool belongs to (e.g., "n8n", "general")
            os_type: OS compatibility ("windows", "non-windows", "all")

        Returns:
            The registered tool class or None if it wasn't registered

        Raises:
            TypeError: If the provided class doesn't implement ToolInterface
        """
        if not inspect.isclass(tool_class):
            raise TypeError(f"Expected a class, got {type(tool_class)}")

        if not issubclass(tool_class, ToolInterface):
            raise TypeError(
                f"Class {tool_class.__name__} does not implement ToolInterface"
            )

        # Skip abstract classes
        if inspect.isabstract(tool_class):
            logger.debug(
                f"Skipping registration of abstract class {tool_class.__name__}"
            )
            return None

        # Create a temporary instance to get the name
        try:
            temp_instance = tool_class()
            tool_name = temp_instance.name
        except Exception as e:
            logger.error(f"Error creating instance of {tool_class.__name__}: {e}")
            return None

        if tool_name in _disabled_tool_names():
            logger.info(f"Tool {tool_name} is disabled by configuration, skipping")
            return None

        logger.debug(
            f"Registering tool: {tool_name} ({tool_class.__name__}) from {source}"
            f"{f' [ecosystem: {ecosystem}]' if ecosystem else ''}"
            f"{f' [os: {os_type}]' if os_type else ''}"
        )
        self.tools[tool_name] = tool_class
        self.tool_sources[tool_name] = source
        self.tool_ecosystems[tool_name] = (
            str(ecosystem) if ecosystem is not None else None
        )
        self.tool_os[tool_name] = str(os_type) if os_type is not None else None
        return tool_class

    def get_tool_instance(self, tool_name: str) -> Optional[ToolInterface]:
        """Get or create an instance of a registered tool.

        Args:
            tool_name: Name of the tool to get

        Returns:
            Instance of the tool, or None if not found
        """
        if tool_name in self.instances:
            return self.instances[tool_name]

        registered_name = tool_name
        if tool_name not in self.tools:
            # Fall back to a case-insensitive match
            registered_name = next(
                (name for name in self.tools if name.lower() == tool_name.lower()),
                None,
            )
            if registered_name is None:
                logger.warning(f"Tool '{tool_name}' not found")
                return None
            if registered_name in self.instances:
                return self.instances[registered_name]

        try:
            instance = self.tools[registered_name]()
        except Exception as e:
            logger.error(f"Error creating instance of tool {registered_name}: {e}")
            return None

        self.instances[registered_name] = instance
        return instance

    def discover_tools(self, package_name: str = "plugins") -> None:
        """Discover tools by recursively scanning a package.

        Test packages are skipped.

        Args:
            package_name: Name of the package to scan for tools
        """
        logger.info(f"Discovering tools in package: {package_name}")

        try:
            package = importlib.import_module(package_name)
        except Exception as e:
            logger.error(f"Error discovering tools in {package_name}: {e}")
            return

        package_path = getattr(package, "__path__", [])
        for _, module_name, is_pkg in pkgutil.iter_modules(package_path):
            if module_name == "tests" or module_name.startswith("test_"):
                continue

            full_name = f"{package_name}.{module_name}"
            if full_name in self.discovered_paths:
                continue
            self.discovered_paths.add(full_name)

            try:
                if is_pkg:
                    self.discover_tools(full_name)
                else:
                    module = importlib.import_module(full_name)
                    self._scan_module_for_tools(module)
            except Exception as e:
                logger.warning(f"Error processing module {full_name}: {e}")

    def _scan_module_for_tools(self, module) -> None:
        """Register every concrete ToolInterface class defined in a module.

        Args:
            module: The module to scan
        """
        module_name = getattr(module, "__name__", "Unknown")
        registered = []

        for name, obj in inspect.getmembers(module, inspect.isclass):
            if (
                obj.__module__ != module_name
                or not issubclass(obj, ToolInterface)
                or obj is ToolInterface
                or inspect.isabstract(obj)
            ):
                continue

            ecosystem = getattr(obj, "_mcp_ecosystem", None)
            os_type = getattr(obj, "_mcp_os", None)
            source = getattr(obj, "_mcp_source", "code")
            try:
                if self.register_tool(obj, source=source, ecosystem=ecosystem, os_type=os_type):
                    registered.append(name)
            except Exception as e:
                logger.warning(f"Error registering tool {name} from {module_name}: {e}")

        if registered:
            logger.info(f"Module {module_name}: registered {len(registered)} tools")
        else:
            logger.debug(f"No tool classes found in module {module_name}")

    def get_all_tools(self) -> List[Type[ToolInterface]]:
        """Get all registered tool classes."""
        return list(self.tools.values())

    def get_tool_sources(self) -> Dict[str, str]:
        """Get a mapping of tool names to their sources."""
        return self.tool_sources.copy()

    def get_tools_by_ecosystem(self, ecosystem: str) -> List[Type[ToolInterface]]:
        """Get all tool classes registered for an ecosystem."""
        return [
            self.tools[name]
            for name, tool_ecosystem in self.tool_ecosystems.items()
            if tool_ecosystem is not None and tool_ecosystem.lower() == ecosystem.lower()
        ]

    def get_all_instances(self) -> List[ToolInterface]:
        """Get instances of all registered tools."""
        instances = []
        for tool_name in list(self.tools):
            instance = self.get_tool_instance(tool_name)
            if instance is not None:
                instances.append(instance)
        return instances

    def get_tool_definitions(self) -> List[Tool]:
        """Get the MCP tool definitions of all registered tools."""
        return [instance.definition() for instance in self.get_all_instances()]

    def clear(self) -> None:
        """Clear all registered tools and instances."""
        self.tools.clear()
        self.instances.clear()
        self.discovered_paths.clear()
        self.tool_sources.clear()
        self.tool_ecosystems.clear()
        self.tool_os.clear()


# Create singleton instance
registry = PluginRegistry()


# Decorator for registering tools
def register_tool(
    cls=None,
    *,
    source: str = "code",
    ecosystem: Optional[Union[str, Ecosystem]] = None,
    os_type: Optional[Union[str, OSType]] = None,
):
    """Decorator to register a tool class with the plugin registry.

    Args:
        cls: The class to register
        source: Source of the tool
        ecosystem: Ecosystem the tool belongs to (e.g., "n8n", "general")
        os_type: OS compatibility ("windows", "non-windows", "all")

    Example:
        @register_tool
        class MyTool(ToolInterface):
            ...

        # Or with metadata specified:
        @register_tool(ecosystem=Ecosystem.N8N, os_type=OSType.ALL)
        class AddNodeTool(ToolInterface):
            ...
    """

    def _register(cls):
        # Store metadata on the class for discovery
        cls._mcp_ecosystem = str(ecosystem) if ecosystem is not None else None
        cls._mcp_source = source
        cls._mcp_os = str(os_type) if os_type is not None else None

        result = registry.register_tool(
            cls,
            source=source,
            ecosystem=ecosystem,
            os_type=os_type,
        )
        return cls if result is None else result

    if cls is None:
        return _register
    return _register(cls)


def discover_and_register_tools(packages: Iterable[str] = ("plugins",)) -> None:
    """Discover and register all tools in the given plugin packages."""
    with time_plugin_operation("Tool discovery"):
        for package_name in packages:
            registry.discover_tools(package_name)

    logger.info(f"Total tools registered: {len(registry.tools)}")
    logger.debug(f"Registered tool names: {list(registry.tools.keys())}")
