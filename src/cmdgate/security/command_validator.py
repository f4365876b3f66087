"""Command validation against a shell's security policy.

Commands are split on the ``&&`` chaining operator and every step is checked
against the shell's blocklists, operator list and length limit. ``cd``-style
steps move a directory cursor (``pushd``/``popd`` keep a stack of cursors)
whose every position must lie inside the allow-list. A target the shell would
expand itself (home, variables, the previous directory) cannot be checked and
is rejected. The first violation rejects the whole chain.
"""

import re
import shlex

from cmdgate.core.shells import ValidationContext
from cmdgate.security.path_validation import (
    ValidationOutcome,
    ViolationKind,
    validate_working_directory,
)

CHAIN_SPLIT = re.compile(r"\s*&&\s*")
CHAIN_OPERATOR = "&&"
DIRECTORY_CHANGE_COMMANDS = frozenset({"cd", "chdir", "sl", "set-location"})
DIRECTORY_PUSH_COMMANDS = frozenset({"pushd", "push-location"})
DIRECTORY_POP_COMMANDS = frozenset({"popd", "pop-location"})
SHELL_EXPANSION_CHARS = ("$", "`", "%")
WINDOWS_EXECUTABLE_SUFFIXES = (".exe", ".cmd", ".bat", ".com", ".ps1")


def parse_command(command: str) -> tuple[str, list[str]]:
    """Split a command into executable and arguments.

    Single and double quotes group words; backslashes are kept literally so
    Windows paths survive.

    Raises:
        ValueError: If quotes are unbalanced
    """
    lexer = shlex.shlex(command.strip(), posix=True, punctuation_chars=False)
    lexer.whitespace_split = True
    lexer.escape = ""
    lexer.commenters = ""
    tokens = list(lexer)
    if not tokens:
        return "", []
    return tokens[0], tokens[1:]


def split_chain(command: str) -> list[str]:
    """Split a command on ``&&`` into its non-empty steps."""
    return [step.strip() for step in CHAIN_SPLIT.split(command) if step.strip()]


def tokenize_chain(command: str) -> list[str]:
    """Tokenize every step of a chain, joining the steps with ``&&`` tokens.

    Raises:
        ValueError: If a step has unbalanced quotes
    """
    tokens: list[str] = []
    for step in split_chain(command):
        executable, args = parse_command(step)
        if tokens:
            tokens.append(CHAIN_OPERATOR)
        tokens.extend([executable, *args])
    return tokens


def extract_command_name(executable: str) -> str:
    """Return the lowercased base name of an executable.

    ``C:\\Windows\\System32\\NET.EXE`` and ``/usr/bin/net`` both yield ``net``.
    """
    name = re.split(r"[\\/]", executable.strip())[-1].lower()
    for suffix in WINDOWS_EXECUTABLE_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)]
    return name


def is_command_blocked(executable: str, context: ValidationContext) -> bool:
    """Check the executable's base name against the blocked commands."""
    name = extract_command_name(executable)
    blocked = {c.lower() for c in context.shell_config.restrictions.blocked_commands}
    return name in blocked


def find_blocked_argument(args: list[str], context: ValidationContext) -> str | None:
    """Return the first argument that is on the blocklist, if any."""
    blocked = {a.lower() for a in context.shell_config.restrictions.blocked_arguments}
    for arg in args:
        if arg.lower() in blocked:
            return arg
    return None


def is_argument_blocked(args: list[str], context: ValidationContext) -> bool:
    """Check arguments against the blocked arguments (case-insensitive)."""
    return find_blocked_argument(args, context) is not None


def find_blocked_operator(command: str, context: ValidationContext) -> str | None:
    """Return the first blocked operator present outside ``&&``, if any."""
    remainder = command.replace(CHAIN_OPERATOR, " ")
    for operator in context.shell_config.restrictions.blocked_operators:
        if operator and operator in remainder:
            return operator
    return None


def validate_shell_operators(command: str, context: ValidationContext) -> ValidationOutcome:
    """Reject blocked shell operators when injection protection is on."""
    if not context.shell_config.security.enable_injection_protection:
        return ValidationOutcome.success()

    operator = find_blocked_operator(command, context)
    if operator is not None:
        return ValidationOutcome.violation(
            ViolationKind.BLOCKED_OPERATOR,
            f"Command contains blocked operator for {context.shell_name}: \"{operator}\"",
            value=operator,
        )
    return ValidationOutcome.success()


def directory_target_problem(args: list[str]) -> str | None:
    """Explain why a directory-change target cannot be validated, if it cannot.

    Bare ``cd`` (home), ``~`` prefixes, variable or command substitution and
    ``-`` (previous directory) or other options all leave the real target to
    the shell.
    """
    if not args:
        return "an explicit target directory is required"

    target = args[0]
    if target.startswith("-"):
        return f"option or previous-directory target '{target}' is not supported"
    if target.startswith("~"):
        return f"home-relative target '{target}' is expanded by the shell"
    for char in SHELL_EXPANSION_CHARS:
        if char in target:
            return f"target '{target}' contains shell expansion character '{char}'"
    return None


class CommandValidator:
    """Validates commands and command chains for one request."""

    def validate_step(self, context: ValidationContext, step: str) -> ValidationOutcome:
        """Validate one step of a chain (no ``&&`` inside).

        Args:
            context: Validation context of the target shell
            step: A single command

        Returns:
            Success, or the first violation found
        """
        outcome = validate_shell_operators(step, context)
        if not outcome.ok:
            return outcome

        try:
            executable, args = parse_command(step)
        except ValueError as e:
            return ValidationOutcome.violation(
                ViolationKind.UNPARSEABLE,
                f"Command could not be parsed for {context.shell_name}: {e}",
                value=step,
            )

        if is_command_blocked(executable, context):
            name = extract_command_name(executable)
            return ValidationOutcome.violation(
                ViolationKind.BLOCKED_COMMAND,
                f"Command is blocked for {context.shell_name}: \"{name}\"",
                value=name,
            )

        blocked_arg = find_blocked_argument(args, context)
        if blocked_arg is not None:
            return ValidationOutcome.violation(
                ViolationKind.BLOCKED_ARGUMENT,
                f"One or more arguments are blocked for {context.shell_name}: \"{blocked_arg}\". "
                "Check configuration for blocked patterns.",
                value=blocked_arg,
            )

        max_length = context.shell_config.security.max_command_length
        if len(step) > max_length:
            return ValidationOutcome.violation(
                ViolationKind.COMMAND_TOO_LONG,
                f"Command exceeds maximum length of {max_length} for {context.shell_name}",
                value=str(len(step)),
            )

        return ValidationOutcome.success()

    def validate(self, context: ValidationContext, command: str, working_dir: str) -> ValidationOutcome:
        """Validate a full command chain starting from ``working_dir``.

        Args:
            context: Validation context of the target shell
            command: Command string, possibly a ``&&`` chain
            working_dir: Directory the chain starts in (already validated)

        Returns:
            Success with the final directory cursor, or the first violation
            tagged with the failing step
        """
        config = context.shell_config
        dialect = context.dialect

        max_length = config.security.max_command_length
        if len(command) > max_length:
            return ValidationOutcome.violation(
                ViolationKind.COMMAND_TOO_LONG,
                f"Command exceeds maximum length of {max_length} for {context.shell_name}",
                value=str(len(command)),
            )

        cursor = dialect.normalize_path(working_dir, config)
        stack: list[str] = []

        for step in split_chain(command):
            outcome = self.validate_step(context, step)
            if not outcome.ok:
                return ValidationOutcome.violation(outcome.kind, outcome.message, outcome.value, step)

            executable, args = parse_command(step)
            name = extract_command_name(executable)

            if name in DIRECTORY_POP_COMMANDS:
                if args:
                    return ValidationOutcome.violation(
                        ViolationKind.INVALID_PATH,
                        f"Directory change rejected in step \"{step}\": "
                        f"{name} does not accept arguments",
                        args[0],
                        step,
                    )
                if stack:
                    cursor = stack.pop()
                continue

            if name not in DIRECTORY_CHANGE_COMMANDS and name not in DIRECTORY_PUSH_COMMANDS:
                continue

            problem = directory_target_problem(args)
            if problem is not None:
                if not config.security.restrict_working_directory:
                    continue
                return ValidationOutcome.violation(
                    ViolationKind.INVALID_PATH,
                    f"Directory change rejected in step \"{step}\": {problem}",
                    args[0] if args else None,
                    step,
                )

            target = dialect.resolve(cursor, args[0], config)
            outcome = validate_working_directory(target, context)
            if not outcome.ok:
                return ValidationOutcome.violation(
                    outcome.kind,
                    f"Directory change rejected in step \"{step}\": {outcome.message}",
                    outcome.value,
                    step,
                )
            if name in DIRECTORY_PUSH_COMMANDS:
                stack.append(cursor)
            cursor = target

        return ValidationOutcome.success(final_directory=cursor)
