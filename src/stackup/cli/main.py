"""Main CLI entry point."""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import click
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from stackup import __version__
from stackup.cli.output import (
    display_change_set_summaries,
    display_data,
    display_event,
)
from stackup.config.models import (
    DEFAULT_CAPABILITIES,
    REGION_PATTERN,
    ROLE_ARN_PATTERN,
    ChangeSetOptions,
    ClientSettings,
    CreateOrUpdateOptions,
)
from stackup.differ import DEFAULT_CONTEXT_LINES, DIFF_FORMATS, Differ
from stackup.parameters import merge_parameters, normalize_tags, parse_overrides, resolve_parameters
from stackup.source import RemoteSource, load_source, source_data
from stackup.stack.change_set import ChangeSet
from stackup.stack.controller import StackController, list_stack_names
from stackup.stack.models import ChangeSetState
from stackup.stack.watcher import EventWatcher
from stackup.utils.aws_client import AWSClientManager
from stackup.utils.errors import StackupError, UsageError, error_handler
from stackup.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


class StackupGroup(click.Group):
    """Command group reporting stackup errors on stderr with a non-zero exit."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except UsageError as e:
            raise click.UsageError(e.message, ctx) from e
        except StackupError as e:
            logger.debug(f"Error details: {e.to_dict()}")
            raise click.ClickException(e.to_user_message()) from e
        except (ClientError, BotoCoreError) as e:
            error = error_handler.handle_exception(e)
            logger.debug(f"Error details: {error.to_dict()}")
            raise click.ClickException(error.to_user_message()) from e


def _pattern_validator(pattern: str, description: str):
    """Build a click callback checking an optional value against a pattern."""
    regex = re.compile(pattern)

    def validate(ctx, param, value):
        if value is not None and not regex.match(value):
            raise click.BadParameter(f"{value!r} doesn't look like {description}")
        return value

    return validate


validate_region = _pattern_validator(REGION_PATTERN, "a region")
validate_role_arn = _pattern_validator(ROLE_ARN_PATTERN, "a role ARN")


@dataclass
class CliState:
    """Per-invocation state shared with subcommands."""

    settings: ClientSettings
    stack_name: Optional[str] = None
    change_set_name: str = "pending"
    _clients: Optional[AWSClientManager] = field(default=None, repr=False)

    @property
    def clients(self) -> AWSClientManager:
        if self._clients is None:
            self._clients = AWSClientManager(
                region=self.settings.region,
                role_arn=self.settings.role_arn,
                retry_limit=self.settings.retry_limit
            )
        return self._clients

    def stack(self) -> StackController:
        return StackController(
            self.clients.cloudformation,
            self.stack_name,
            wait=self.settings.wait,
            wait_poll_interval=self.settings.wait_poll_interval,
            wait_timeout=self.settings.wait_timeout,
        )

    def change_set(self) -> ChangeSet:
        return self.stack().change_set(self.change_set_name)

    def read(self, location: str) -> Any:
        """Parsed content of a source location."""
        source = load_source(location)
        return source_data(source, self.clients.s3 if source.is_remote else None)

    def display(self, data: Any):
        display_data(data, self.settings.output_format)


def report_change(final_status: Optional[str]):
    if final_status is not None:
        click.echo(final_status)


def build_options(options_class, **kwargs):
    """Instantiate an option record, turning validation failures into usage errors."""
    try:
        return options_class(**kwargs)
    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        raise UsageError(messages, cause=e) from e


def template_fields(
    location: Optional[str],
    use_previous_template: bool,
    preserve_template_formatting: bool
) -> Dict[str, Any]:
    if not location and not use_previous_template:
        raise UsageError("Specify either --template or --use-previous-template")
    fields: Dict[str, Any] = {
        "use_previous_template": use_previous_template,
        "preserve_template_formatting": preserve_template_formatting,
    }
    if location:
        source = load_source(location)
        if isinstance(source, RemoteSource):
            fields["template_url"] = source.url
        else:
            fields["template"] = source.data
            fields["template_body"] = source.body
    return fields


def parameter_fields(state: CliState, parameter_locations, overrides) -> Dict[str, Any]:
    try:
        override_values = parse_overrides(overrides)
    except ValueError as e:
        raise UsageError(str(e), cause=e) from e
    sources = [state.read(location) for location in parameter_locations]
    return merge_parameters(sources, override_values)


def template_options(f):
    f = click.option('-P', '--preserve-template-formatting', is_flag=True,
                     help='do not normalise the template when calling the CloudFormation APIs; '
                          'useful for preserving YAML and comments')(f)
    f = click.option('-T', '--use-previous-template', is_flag=True, help='reuse the existing template')(f)
    f = click.option('-t', '--template', 'template_location', metavar='FILE', help='template source')(f)
    return f


def parameter_options(f):
    f = click.option('-o', '--override', 'overrides', metavar='PARAM=VALUE', multiple=True,
                     help='parameter overrides')(f)
    f = click.option('-p', '--parameters', 'parameter_locations', metavar='FILE', multiple=True,
                     help='parameters file (last wins)')(f)
    return f


def update_options(f):
    f = click.option('--capability', 'capabilities', metavar='CAPABILITY', multiple=True,
                     default=DEFAULT_CAPABILITIES, show_default=True, help='cloudformation capability')(f)
    f = click.option('--service-role-arn', metavar='SERVICE_ROLE_ARN', callback=validate_role_arn,
                     help='cloudformation service role ARN')(f)
    f = click.option('--tags', 'tags_location', metavar='FILE', help='stack tags file')(f)
    return f


@click.group(cls=StackupGroup, invoke_without_command=True)
@click.option('-L', '--list', 'list_stacks', is_flag=True, help='list stacks')
@click.option('-Y', '--yaml', 'use_yaml', is_flag=True, help='output data in YAML format')
@click.option('--region', callback=validate_region, help='set region')
@click.option('--with-role', 'role_arn', metavar='ROLE_ARN', callback=validate_role_arn, help='assume this role')
@click.option('--retry-limit', type=click.IntRange(min=0), envvar='AWS_API_RETRY_LIMIT',
              help='maximum number of retries for API calls')
@click.option('--wait/--no-wait', default=True, show_default=True, help='wait for stack updates to complete')
@click.option('--wait-poll-interval', type=click.IntRange(min=0), default=5, show_default=True,
              help='polling interval (in seconds) while waiting for updates')
@click.option('--wait-timeout', type=click.FloatRange(min=0, min_open=True),
              help='give up waiting after this many seconds')
@click.option('--debug', is_flag=True, help='enable debugging')
@click.option('--log-file', type=click.Path(dir_okay=False), help='also write JSON logs to this file')
@click.version_option(__version__, '--version', prog_name='stackup', message='%(prog)s v%(version)s')
@click.argument('stack_name', metavar='NAME', required=False)
@click.pass_context
def cli(ctx, list_stacks, use_yaml, region, role_arn, retry_limit, wait, wait_poll_interval,
        wait_timeout, debug, log_file, stack_name):
    """Manage CloudFormation stack NAME."""
    setup_logging('debug' if debug else 'info', log_file)

    settings = ClientSettings(
        region=region,
        role_arn=role_arn,
        retry_limit=retry_limit,
        wait=wait,
        wait_poll_interval=wait_poll_interval,
        wait_timeout=wait_timeout,
        output_format='yaml' if use_yaml else 'json',
        debug=debug,
    )
    ctx.obj = CliState(settings=settings, stack_name=stack_name)

    if list_stacks:
        for name in list_stack_names(ctx.obj.clients.cloudformation):
            click.echo(name)
        ctx.exit(0)

    if not stack_name:
        raise click.UsageError("Missing argument 'NAME'.", ctx)
    if ctx.invoked_subcommand is None:
        raise click.UsageError("Missing command.", ctx)


@cli.command()
@click.pass_obj
def status(state: CliState):
    """Print stack status."""
    click.echo(state.stack().status or "")


@cli.command()
@template_options
@parameter_options
@update_options
@click.option('--policy', 'policy_location', metavar='FILE', help='stack policy file')
@click.option('--on-failure', type=click.Choice(['DO_NOTHING', 'ROLLBACK', 'DELETE']), default='ROLLBACK',
              show_default=True, help='when stack creation fails')
@click.pass_obj
def up(state: CliState, template_location, use_previous_template, preserve_template_formatting,
       parameter_locations, overrides, tags_location, service_role_arn, capabilities,
       policy_location, on_failure):
    """Create/update the stack."""
    fields = template_fields(template_location, use_previous_template, preserve_template_formatting)
    fields["parameters"] = parameter_fields(state, parameter_locations, overrides)
    if tags_location:
        fields["tags"] = normalize_tags(state.read(tags_location))
    if policy_location:
        policy = load_source(policy_location)
        if isinstance(policy, RemoteSource):
            fields["stack_policy_url"] = policy.url
        else:
            fields["stack_policy"] = policy.data
    if service_role_arn:
        fields["role_arn"] = service_role_arn

    options = build_options(
        CreateOrUpdateOptions,
        on_failure=on_failure,
        capabilities=list(capabilities),
        **fields
    )
    report_change(state.stack().create_or_update(options))


@cli.command('change-sets')
@click.pass_obj
def change_sets(state: CliState):
    """List change-sets."""
    display_change_set_summaries(state.stack().change_set_summaries())


@cli.group('change-set', cls=StackupGroup)
@click.option('--name', 'change_set_name', default='pending', show_default=True, help='Name of change-set')
@click.pass_obj
def change_set(state: CliState, change_set_name):
    """Change-set operations."""
    state.change_set_name = change_set_name


@change_set.command('create')
@click.option('-d', '--description', metavar='DESC', help='Change-set description')
@template_options
@click.option('--force', is_flag=True, help='replace existing change-set of the same name')
@click.option('--no-fail-on-empty-change-set', 'allow_empty_change_set', is_flag=True,
              help="don't fail on empty change-set")
@parameter_options
@update_options
@click.pass_obj
def change_set_create(state: CliState, description, template_location, use_previous_template,
                      preserve_template_formatting, force, allow_empty_change_set,
                      parameter_locations, overrides, tags_location, service_role_arn, capabilities):
    """Create a change-set."""
    fields = template_fields(template_location, use_previous_template, preserve_template_formatting)
    fields["parameters"] = parameter_fields(state, parameter_locations, overrides)
    if tags_location:
        fields["tags"] = normalize_tags(state.read(tags_location))
    if service_role_arn:
        fields["role_arn"] = service_role_arn

    options = build_options(
        ChangeSetOptions,
        description=description,
        force=force,
        allow_empty_change_set=allow_empty_change_set,
        capabilities=list(capabilities),
        **fields
    )
    result = state.change_set().create(options)
    if result.state == ChangeSetState.CREATE_FAILED:
        report_change(result.status_reason)
    else:
        report_change(result.status)


@change_set.command('changes')
@click.pass_obj
def change_set_changes(state: CliState):
    """Describe the change-set."""
    description = state.change_set().describe()
    state.display([change.model_dump(mode="json", exclude_none=True) for change in description.changes])


@change_set.command('inspect')
@click.pass_obj
def change_set_inspect(state: CliState):
    """Show full change-set details."""
    state.display(state.change_set().describe().to_dict())


@change_set.command('apply')
@click.pass_obj
def change_set_apply(state: CliState):
    """Apply the change-set."""
    report_change(state.change_set().execute())


change_set.add_command(change_set_apply, 'execute')


@change_set.command('delete')
@click.pass_obj
def change_set_delete(state: CliState):
    """Delete the change-set."""
    report_change(state.change_set().delete())


@cli.command()
@click.option('--diff-format', type=click.Choice(DIFF_FORMATS), default='color', show_default=True,
              help="'text', 'color', or 'html'")
@click.option('-C', '--context-lines', type=click.IntRange(min=0), default=DEFAULT_CONTEXT_LINES,
              show_default=True, help='number of lines of context to show')
@click.option('-t', '--template', 'template_location', metavar='FILE', help='template source')
@parameter_options
@click.option('--tags', 'tags_location', metavar='FILE', help='stack tags file')
@click.pass_obj
def diff(state: CliState, diff_format, context_lines, template_location, parameter_locations,
         overrides, tags_location):
    """Compare template/params to current stack."""
    stack = state.stack()
    current: Dict[str, Any] = {}
    planned: Dict[str, Any] = {}

    if template_location:
        current["Template"] = stack.template()
        planned["Template"] = state.read(template_location)
    if parameter_locations or overrides:
        existing = stack.parameters()
        current["Parameters"] = existing
        planned["Parameters"] = resolve_parameters(
            parameter_fields(state, parameter_locations, overrides), existing
        )
    if tags_location:
        current["Tags"] = stack.tags()
        planned["Tags"] = normalize_tags(state.read(tags_location))

    if not planned:
        raise UsageError("specify '--template' or '--parameters'")

    differ = Differ(diff_format, state.settings.output_format)
    output = differ.diff(current, planned, context_lines)
    if output:
        click.echo(output, nl=False)
    else:
        click.echo("No changes")


@cli.command()
@click.pass_obj
def down(state: CliState):
    """Remove the stack."""
    report_change(state.stack().delete())


cli.add_command(down, 'delete')


@cli.command('cancel-update')
@click.pass_obj
def cancel_update(state: CliState):
    """Cancel the update in-progress."""
    report_change(state.stack().cancel_update())


@cli.command()
@click.pass_obj
def wait(state: CliState):
    """Wait until stack is stable."""
    click.echo(state.stack().wait() or "")


@cli.command()
@click.option('-f', '--follow', is_flag=True, help='follow new events')
@click.option('--data', 'as_data', is_flag=True, help='display events as data')
@click.pass_obj
def events(state: CliState, follow, as_data):
    """List stack events."""
    stack = state.stack()
    watcher = EventWatcher(stack.cloudformation, stack.stack_name, from_start=True)
    while True:
        for event in watcher.new_events():
            display_event(event, as_data, state.settings.output_format)
        if not follow:
            break
        time.sleep(EventWatcher.poll_interval)


@cli.command()
@click.pass_obj
def template(state: CliState):
    """Display stack template."""
    state.display(state.stack().template())


@cli.command()
@click.pass_obj
def parameters(state: CliState):
    """Display stack parameters."""
    state.display(state.stack().parameters())


cli.add_command(parameters, 'params')


@cli.command()
@click.pass_obj
def tags(state: CliState):
    """Display stack tags."""
    state.display(state.stack().tags())


@cli.command()
@click.pass_obj
def resources(state: CliState):
    """Display stack resources."""
    state.display(state.stack().resources())


@cli.command()
@click.pass_obj
def outputs(state: CliState):
    """Display stack outputs."""
    state.display(state.stack().outputs())


@cli.command()
@click.pass_obj
def inspect(state: CliState):
    """Display stack particulars."""
    state.display(state.stack().inspect())


def main():
    """Console script entry point."""
    cli(prog_name='stackup')


if __name__ == '__main__':
    main()
