"""Metric commands - each opens a post-processed session and renders one metric."""

import typer
from typing_extensions import Annotated

from cyan.cli.output import (
    format_dot,
    output_json,
    print_composition,
    print_inventories,
    print_records,
    print_series,
)
from cyan.cli.session import get_state, metric_session
from cyan.query.series import MultiSeries

T1_HELP = "beginning of time interval (default is beginning of simulation)"
T2_HELP = "end of time interval (default is end of simulation)"

JsonOption = Annotated[bool, typer.Option("--json", help="Output JSON to stdout")]
StartOption = Annotated[int, typer.Option("--t1", help=T1_HELP)]
EndOption = Annotated[int, typer.Option("--t2", help=T2_HELP)]


def sims(ctx: typer.Context) -> None:
    """List all simulations in the database."""
    with metric_session(get_state(ctx)) as session:
        print_records(session.catalog.evaluate("sims", session.sim_id), title="Simulations")


def agents(
    ctx: typer.Context,
    proto: Annotated[
        str, typer.Option("--proto", help='filter by prototype (default "" is all prototypes)')
    ] = "",
) -> None:
    """List all agents in the simulation."""
    with metric_session(get_state(ctx)) as session:
        print_records(session.catalog.evaluate("agents", session.sim_id, prototype=proto))


def inventory(
    ctx: typer.Context,
    agent_ids: Annotated[
        list[int] | None, typer.Argument(help="Agents to report (none means all agents)")
    ] = None,
    timestep: Annotated[
        int, typer.Option("-t", "--timestep", help="timestep of inventory (-1 = end of simulation)")
    ] = -1,
    as_json: JsonOption = False,
) -> None:
    """Show inventory of one or more agents at a specific timestep."""
    with metric_session(get_state(ctx)) as session:
        inventories = session.catalog.evaluate(
            "inv", session.sim_id, timestep=timestep, agent_ids=agent_ids or ()
        )
        if as_json:
            output_json(inventories)
        else:
            print_inventories(inventories)


def created(
    ctx: typer.Context,
    agent_ids: Annotated[
        list[int] | None, typer.Argument(help="Creating agents (none means all agents)")
    ] = None,
    t1: StartOption = 0,
    t2: EndOption = -1,
    as_json: JsonOption = False,
) -> None:
    """Show material created by one or more agents between specific timesteps."""
    with metric_session(get_state(ctx)) as session:
        comp = session.catalog.evaluate(
            "created", session.sim_id, t0=t1, t1=t2, agent_ids=agent_ids or ()
        )
        if as_json:
            output_json(comp)
        else:
            print_composition(comp, title="Material created")


def flow(
    ctx: typer.Context,
    groups: Annotated[
        list[str], typer.Argument(help="<from-agents...> .. <to-agents...>")
    ],
    t1: StartOption = 0,
    t2: EndOption = -1,
    as_json: JsonOption = False,
) -> None:
    """Show total transacted material between two groups of agents."""
    if ".." not in groups:
        raise typer.BadParameter("separate sending and receiving agents with '..'")
    split = groups.index("..")
    try:
        senders = [int(a) for a in groups[:split]]
        receivers = [int(a) for a in groups[split + 1 :]]
    except ValueError as e:
        raise typer.BadParameter(f"agent ids must be integers: {e}") from e

    with metric_session(get_state(ctx)) as session:
        comp = session.catalog.evaluate(
            "flow", session.sim_id, t0=t1, t1=t2, from_agents=senders, to_agents=receivers
        )
        if as_json:
            output_json(comp)
        else:
            print_composition(comp, title="Material transacted")


def inventory_series(
    ctx: typer.Context,
    agent_id: Annotated[int, typer.Argument(help="Agent whose inventory to trace")],
    isotopes: Annotated[list[int], typer.Argument(help="Nuclide ids (e.g. 922350000)")],
) -> None:
    """Print a time series of an agent's inventory for specified isotopes."""
    with metric_session(get_state(ctx)) as session:
        series = MultiSeries(
            session.catalog.evaluate("invseries", session.sim_id, agent_id=agent_id, nuc_id=iso)
            for iso in isotopes
        )
        print_series(f"Agent {agent_id} inventory in kg", [str(i) for i in isotopes], series)


def deploy_series(
    ctx: typer.Context,
    prototype: Annotated[str, typer.Argument(help="Prototype name")],
) -> None:
    """Print a time-series of a prototype's total active deployments."""
    with metric_session(get_state(ctx)) as session:
        series = MultiSeries(
            [session.catalog.evaluate("deployseries", session.sim_id, prototype=prototype)]
        )
        print_series(f"Prototype {prototype} total active deployments", ["Count"], series)


def flow_graph(
    ctx: typer.Context,
    proto: Annotated[bool, typer.Option("--proto", help="aggregate nodes by prototype")] = False,
    t1: StartOption = 0,
    t2: EndOption = -1,
) -> None:
    """Print a graphviz dot graph of resource arcs between facilities."""
    with metric_session(get_state(ctx)) as session:
        arcs = session.catalog.evaluate(
            "flowgraph", session.sim_id, t0=t1, t1=t2, by_prototype=proto
        )
        typer.echo(format_dot(arcs))


def energy(ctx: typer.Context, t1: StartOption = 0, t2: EndOption = -1) -> None:
    """Print thermal energy (J) generated by the simulation between 2 timesteps."""
    with metric_session(get_state(ctx)) as session:
        typer.echo(session.catalog.evaluate("energy", session.sim_id, t0=t1, t1=t2))
