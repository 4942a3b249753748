"""Command-line interface router for hashpkg."""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from hashpkg.check import check_package
from hashpkg.clean import clean_install_root
from hashpkg.config import ConfigLoadError, ConfigValidationError, load_config
from hashpkg.constants import (
    HOOK_POST_IMPORT,
    HOOK_POST_INIT,
    HOOK_POST_PUBLISH,
    HOOK_PRE_PUBLISH,
    INITIAL_VERSION,
    LAST_PUBLISHED_FILE,
    MANIFEST_FILENAME,
)
from hashpkg.deps import dependency_stats, dependency_tree, enumerate_dependencies
from hashpkg.domain.manifest import (
    find_package_root,
    load_lock_file,
    load_manifest_tree,
    load_package,
    save_manifest_tree,
    save_package,
)
from hashpkg.domain.models import Dependency, JSONValue, Package
from hashpkg.domain.versions import VersionError, next_version
from hashpkg.errors import HashpkgError, ManifestError
from hashpkg.hooks import InstallPathResolver, SubprocessHookRunner, SubtoolLocator
from hashpkg.observability import (
    configure_structlog,
    correlation_scope,
    setup_logging,
    shutdown_logging,
)
from hashpkg.publish import Publisher
from hashpkg.query import PatchPath, QueryError
from hashpkg.resolver import InstallPipeline
from hashpkg.storage import ContentStore, IpfsHttpStore, StorageError, open_content_store
from hashpkg.store import PackageStore
from hashpkg.ui.render import CLIRenderer, create_renderer
from hashpkg.update import UpdateCascade
from hashpkg.utils.fs import atomic_write

EXIT_OK: Final[int] = 0
EXIT_FAILURE: Final[int] = 1
EXIT_USAGE: Final[int] = 2
EXIT_CHECK_FAILED: Final[int] = 3


class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    def __init__(self, message: str, exit_code: int = EXIT_FAILURE) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


@dataclass(slots=True)
class CommandContext:
    """Everything one command invocation needs, wired from the effective config."""

    config: dict[str, Any]
    cwd: Path
    store: ContentStore
    hooks: SubprocessHookRunner
    install_paths: InstallPathResolver
    packages: PackageStore
    renderer: CLIRenderer

    def pipeline(self) -> InstallPipeline:
        return InstallPipeline(
            self.packages,
            self.hooks,
            install_roots=self.install_paths,
            max_parallel=int(self.config["install"]["max_parallel"]),
        )

    def publisher(self) -> Publisher:
        return Publisher(self.store)

    def cascade(self) -> UpdateCascade:
        return UpdateCascade(self.packages, self.publisher())


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="hashpkg",
        description=(
            "hashpkg — content-addressed package manager.\n\n"
            "Common workflows:\n"
            "  hashpkg init mylib --lang go     Create package.json here\n"
            "  hashpkg import <hash>            Add and install a dependency\n"
            "  hashpkg install                  Install every dependency\n"
            "  hashpkg check                    Report version splits\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to hashpkg TOML config (default: ./hashpkg.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log to the console at debug level and show progress details.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init", parents=[common], help="Create a package.json in the current directory"
    )
    init_parser.add_argument("name", nargs="?", default=None, help="Package name (default: dir)")
    init_parser.add_argument("--lang", default="", help="Language tag for subtool hooks")
    init_parser.set_defaults(handler=_cmd_init)

    install_parser = subparsers.add_parser(
        "install",
        parents=[common],
        help="Install dependencies of the current package, or the given hashes",
        description=(
            "Fetch a dependency closure, then run post-install hooks leaf-first.\n\n"
            "Examples:\n"
            "  hashpkg install\n"
            "  hashpkg install --global <hash>\n"
            "  hashpkg install --lock hashpkg-lock.json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    install_parser.add_argument("refs", nargs="*", help="Package hashes to install")
    install_parser.add_argument(
        "--global", dest="global_install", action="store_true", help="Use the global root"
    )
    install_parser.add_argument("--lock", default=None, help="Install the plan in a lock file")
    install_parser.add_argument(
        "--save", action="store_true", help="Record installed hashes as dependencies"
    )
    install_parser.set_defaults(handler=_cmd_install)

    import_parser = subparsers.add_parser(
        "import", parents=[common], help="Add a package as a dependency and install it"
    )
    import_parser.add_argument("ref", help="Package hash")
    import_parser.set_defaults(handler=_cmd_import)

    get_parser = subparsers.add_parser(
        "get", parents=[common], help="Download a package into a directory"
    )
    get_parser.add_argument("ref", help="Package hash")
    get_parser.add_argument("-o", "--output", default=None, help="Destination (default: ./<hash>)")
    get_parser.set_defaults(handler=_cmd_get)

    update_parser = subparsers.add_parser(
        "update", parents=[common], help="Point a dependency at a new hash"
    )
    update_parser.add_argument("old", help="Dependency name or hash to replace")
    update_parser.add_argument("new", help="New package hash")
    update_parser.add_argument(
        "--recursive",
        "-r",
        action="store_true",
        help="Also rewrite and republish every package that depends on the old hash",
    )
    update_parser.set_defaults(handler=_cmd_update)

    deps_parser = subparsers.add_parser(
        "deps", parents=[common], help="List dependencies of the current package"
    )
    deps_parser.add_argument(
        "-r", "--recursive", action="store_true", help="List the full transitive closure"
    )
    deps_parser.add_argument("-q", "--quiet", action="store_true", help="Only print hashes")
    deps_parser.add_argument("--tree", action="store_true", help="Print an indented import tree")
    deps_parser.add_argument("--stats", action="store_true", help="Print import statistics")
    deps_parser.set_defaults(handler=_cmd_deps)

    check_parser = subparsers.add_parser(
        "check",
        parents=[common],
        help="Report version splits and stale dependency names or versions",
    )
    check_parser.set_defaults(handler=_cmd_check)

    view_parser = subparsers.add_parser(
        "view", parents=[common], help="Print package.json or a field selected by a query"
    )
    view_parser.add_argument("query", nargs="?", default="", help="Path such as .dependencies[0]")
    view_parser.set_defaults(handler=_cmd_view)

    set_parser = subparsers.add_parser(
        "set", parents=[common], help="Set a package.json field selected by a query"
    )
    set_parser.add_argument("query", help="Path such as .version")
    set_parser.add_argument("value", help="JSON value; anything else is stored as a string")
    set_parser.set_defaults(handler=_cmd_set)

    publish_parser = subparsers.add_parser(
        "publish", parents=[common], help="Publish the current package to content storage"
    )
    publish_parser.set_defaults(handler=_cmd_publish)

    clean_parser = subparsers.add_parser(
        "clean", parents=[common], help="Remove installed packages no longer depended on"
    )
    clean_parser.add_argument(
        "--dry-run", action="store_true", help="Print what would be removed without removing it"
    )
    clean_parser.set_defaults(handler=_cmd_clean)

    version_parser = subparsers.add_parser(
        "version", parents=[common], help="Print or change the package version"
    )
    version_parser.add_argument(
        "value",
        nargs="?",
        default=None,
        help="New semver, or one of major, minor, patch to bump that field",
    )
    version_parser.set_defaults(handler=_cmd_version)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except (HashpkgError, StorageError, QueryError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_init(args: argparse.Namespace) -> int:
    with _command_context(args) as ctx:
        manifest = ctx.cwd / MANIFEST_FILENAME
        if manifest.exists():
            raise CLIError(f"{MANIFEST_FILENAME} already exists in {ctx.cwd}")

        extra: dict[str, JSONValue] = {}
        author = ctx.config.get("user", {}).get("name")
        if author:
            extra["author"] = str(author)
        package = Package(
            name=args.name or ctx.cwd.name,
            version=INITIAL_VERSION,
            language=args.lang,
            extra=extra,
        )
        save_package(manifest, package)
        if package.language:
            ctx.hooks.run_hook(HOOK_POST_INIT, package.language, False, str(ctx.cwd))
        ctx.renderer.info(f"initialized {package.name} in {ctx.cwd}")
    return EXIT_OK


def _cmd_install(args: argparse.Namespace) -> int:
    with _command_context(args) as ctx:
        pipeline = ctx.pipeline()
        if args.lock:
            links = pipeline.install_lock(load_lock_file(args.lock), ctx.cwd)
            ctx.renderer.info(f"linked {len(links)} package(s) from {args.lock}")
            return EXIT_OK

        if not args.refs:
            root_dir, root = _require_root(ctx.cwd)
            location = ctx.install_paths.install_path(root.language, root_dir, args.global_install)
            report = pipeline.install(root, location, global_install=args.global_install)
            ctx.renderer.info(
                f"installed {root.name}: {len(report.fetched)} fetched, "
                f"{len(report.hooked)} hook(s) run, {len(report.skipped)} already done"
            )
            return EXIT_OK

        found = _find_root(ctx.cwd)
        if args.save and found is None:
            raise CLIError(f"--save needs a {MANIFEST_FILENAME}; run 'hashpkg init' first")
        root_dir = found[0] if found else ctx.cwd
        language = found[1].language if found else ""
        location = ctx.install_paths.install_path(language, root_dir, args.global_install)
        added: list[Dependency] = []
        for ref in args.refs:
            package, _ = pipeline.install_ref(ref, location, global_install=args.global_install)
            added.append(Dependency(name=package.name, hash=ref, version=package.version))
            ctx.renderer.info(f"installed {package.name} {ref}")
        if args.save and found is not None:
            root = found[1]
            known = {dep.hash for dep in root.iter_dependencies()}
            fresh = [dep for dep in added if dep.hash not in known]
            save_package(
                root_dir / MANIFEST_FILENAME,
                root.with_dependencies([*root.iter_dependencies(), *fresh]),
            )
    return EXIT_OK


def _cmd_import(args: argparse.Namespace) -> int:
    with _command_context(args) as ctx:
        root_dir, root = _require_root(ctx.cwd)
        for dependency in root.iter_dependencies():
            if dependency.hash == args.ref:
                raise CLIError(f"package {args.ref} already imported as {dependency.name}")

        location = ctx.install_paths.install_path(root.language, root_dir, False)
        package, _ = ctx.pipeline().install_ref(args.ref, location)
        dependency = Dependency(name=package.name, hash=args.ref, version=package.version)
        save_package(
            root_dir / MANIFEST_FILENAME,
            root.with_dependencies([*root.iter_dependencies(), dependency]),
        )
        ctx.hooks.run_hook(HOOK_POST_IMPORT, package.language, package.subtool_required, args.ref)
        ctx.renderer.text(f"imported {package.name} {package.version} {args.ref}".rstrip())
    return EXIT_OK


def _cmd_get(args: argparse.Namespace) -> int:
    with _command_context(args) as ctx:
        dest = Path(args.output).expanduser() if args.output else ctx.cwd / args.ref
        package = ctx.packages.fetch_to(args.ref, dest)
        ctx.renderer.text(f"{package.name} {dest}")
    return EXIT_OK


def _cmd_update(args: argparse.Namespace) -> int:
    with _command_context(args) as ctx:
        root_dir, root = _require_root(ctx.cwd)
        location = ctx.install_paths.install_path(root.language, root_dir, False)
        ctx.pipeline().install_ref(args.new, location)
        result = ctx.cascade().update_dependency(
            root_dir, args.old, args.new, recursive=args.recursive, hooks=ctx.hooks
        )
        for old, new in sorted(result.updates.items()):
            ctx.renderer.text(f"{old} -> {new}")
    return EXIT_OK


def _cmd_deps(args: argparse.Namespace) -> int:
    with _command_context(args) as ctx:
        _, root = _require_root(ctx.cwd)
        renderer = ctx.renderer
        if args.stats:
            stats = dependency_stats(root, ctx.packages)
            renderer.kv("total imports", stats.total_count)
            renderer.kv("unique imports", stats.total_unique)
            renderer.kv("average depth", f"{stats.average_depth:.2f}")
            return EXIT_OK
        if args.tree:
            renderer.lines(dependency_tree(root, ctx.packages, quiet=args.quiet))
            return EXIT_OK

        if args.recursive:
            found = enumerate_dependencies(root, ctx.packages)
            rows = sorted((name, ref, "") for ref, name in found.items())
        else:
            rows = sorted((dep.name, dep.hash, dep.version) for dep in root.iter_dependencies())
        for name, ref, version in rows:
            if args.quiet:
                renderer.text(ref)
            elif args.recursive:
                renderer.row(name, ref)
            else:
                renderer.row(name, ref, version)
    return EXIT_OK


def _cmd_check(args: argparse.Namespace) -> int:
    with _command_context(args) as ctx:
        _, root = _require_root(ctx.cwd)
        report = check_package(root, ctx.packages)
        ctx.renderer.lines(report.format_lines())
        if not report.ok:
            return EXIT_CHECK_FAILED
    return EXIT_OK


def _cmd_view(args: argparse.Namespace) -> int:
    root_dir = _require_root_dir(Path.cwd())
    tree = load_manifest_tree(root_dir / MANIFEST_FILENAME)
    value = PatchPath.parse(args.query).get(tree) if args.query else tree
    create_renderer(verbose=args.verbose).json_value(value)
    return EXIT_OK


def _cmd_set(args: argparse.Namespace) -> int:
    root_dir = _require_root_dir(Path.cwd())
    manifest = root_dir / MANIFEST_FILENAME
    tree = load_manifest_tree(manifest)
    path = PatchPath.parse(args.query)
    if not path.segments:
        raise CLIError("set needs a non-empty query", exit_code=EXIT_USAGE)
    save_manifest_tree(manifest, path.set(tree, _parse_value(args.value)))
    return EXIT_OK


def _cmd_publish(args: argparse.Namespace) -> int:
    with _command_context(args) as ctx:
        root_dir, root = _require_root(ctx.cwd)
        ctx.hooks.run_hook(HOOK_PRE_PUBLISH, root.language, root.subtool_required)
        ref = ctx.publisher().publish(root_dir, root.name)
        last_published = root_dir / LAST_PUBLISHED_FILE
        last_published.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(last_published, f"{root.version}: {ref}\n")
        ctx.hooks.run_hook(HOOK_POST_PUBLISH, root.language, root.subtool_required, ref)
        ctx.renderer.text(f"package {root.name} published with hash: {ref}")
    return EXIT_OK


def _cmd_clean(args: argparse.Namespace) -> int:
    with _command_context(args) as ctx:
        root_dir, root = _require_root(ctx.cwd)
        install_root = ctx.install_paths.install_path(root.language, root_dir, False)
        removed = clean_install_root(root, ctx.packages, install_root, dry_run=args.dry_run)
        for entry in removed:
            ctx.renderer.text(entry.name)
    return EXIT_OK


def _cmd_version(args: argparse.Namespace) -> int:
    root_dir, root = _require_root(Path.cwd())
    if args.value is None:
        create_renderer(verbose=args.verbose).text(root.version)
        return EXIT_OK
    try:
        version = next_version(root.version, args.value)
    except VersionError as exc:
        raise CLIError(str(exc)) from exc
    save_package(root_dir / MANIFEST_FILENAME, root.with_version(version))
    return EXIT_OK


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _command_context(args: argparse.Namespace) -> Iterator[CommandContext]:
    cwd = Path.cwd().resolve()
    verbose = bool(getattr(args, "verbose", False))
    overrides: dict[str, object] = {}
    if verbose:
        overrides["observability.log_level"] = "DEBUG"
        overrides["observability.log_to_console"] = True
    try:
        config = load_config(
            getattr(args, "config_path", None), cli_overrides=overrides, cwd=cwd
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_USAGE) from exc

    run_id = uuid.uuid4().hex[:12]
    configure_structlog()
    setup_logging(config["observability"], run_id=run_id)

    store = open_content_store(config)
    hooks = SubprocessHookRunner(SubtoolLocator(str(config["hooks"]["binary_prefix"])))
    install_paths = InstallPathResolver.from_config(hooks, config)
    packages = PackageStore(
        store,
        install_roots=install_paths,
        cwd=cwd,
        fetch_attempts=int(config["install"]["fetch_attempts"]),
        retry_backoff_seconds=float(config["install"]["retry_backoff_seconds"]),
    )
    context = CommandContext(
        config=config,
        cwd=cwd,
        store=store,
        hooks=hooks,
        install_paths=install_paths,
        packages=packages,
        renderer=create_renderer(verbose=verbose),
    )
    try:
        with correlation_scope(run_id=run_id, command=str(args.command)):
            yield context
    finally:
        if isinstance(store, IpfsHttpStore):
            store.close()
        shutdown_logging()


def _find_root(cwd: Path) -> tuple[Path, Package] | None:
    try:
        root_dir = find_package_root(cwd)
    except ManifestError:
        return None
    return root_dir, load_package(root_dir / MANIFEST_FILENAME)


def _require_root_dir(cwd: Path) -> Path:
    try:
        return find_package_root(cwd)
    except ManifestError as exc:
        raise CLIError(f"{exc}; run 'hashpkg init' first") from exc


def _require_root(cwd: Path) -> tuple[Path, Package]:
    root_dir = _require_root_dir(cwd)
    return root_dir, load_package(root_dir / MANIFEST_FILENAME)


def _parse_value(raw: str) -> JSONValue:
    try:
        parsed: JSONValue = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    return parsed


__all__ = ["CLIError", "CommandContext", "build_parser", "run_cli"]
