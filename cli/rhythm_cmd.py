"""
CLI 命令：rhythm
日常节律的命令行入口。条目可以用 status 中的序号（从 1 开始）或 id 前缀引用。
"""
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

# 添加项目根目录到 sys.path，以便导入 core 模块
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

from core.engine import RhythmEngine
from core.exceptions import InvalidInput, NotFound, RhythmError
from core.logger import setup_logging
from core.models import DayRolled, EstimateReached, IdleAutoPaused, IdleCheckDue
from core.planner import render_text
from core.session import RhythmSession
from core.storage import Storage
from core.time_tracking import format_duration
from interface.editor import UNCHANGED, edit_notes
from interface.schema import ALLOWED_SCHEMAS

STATUS_ICONS = {"idle": "○", "running": "▶", "paused": "⏸", "done": "✓"}


def _parse(schema_name: str, raw: str):
    ok, value = ALLOWED_SCHEMAS[schema_name].validate(raw)
    if not ok:
        raise click.BadParameter(value)
    return value


def _hours(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    return _parse("estimate", raw).total_seconds() / 3600


def _open(ctx: click.Context) -> RhythmSession:
    if "session" not in ctx.obj:
        session = RhythmSession.open(storage=Storage(ctx.obj["data_dir"]))
        for warning in session.warnings:
            click.echo(f"⚠️ {warning}", err=True)
        ctx.obj["session"] = session
    return ctx.obj["session"]


def _resolve(engine: RhythmEngine, ref: str) -> str:
    """序号 (1-based, ACTIVE 展开视图) 或 id 前缀 -> id。"""
    if ref.isdigit():
        return engine.select(int(ref) - 1).id
    matches = []
    for section in ("active", "done", "archived", "postponed"):
        for task in getattr(engine.snapshot, section):
            matches.extend(e.id for e in task.walk() if e.id.startswith(ref))
    if not matches:
        raise NotFound(f"entity {ref}")
    if len(matches) > 1:
        raise InvalidInput(f"'{ref}' matches {len(matches)} entities, use a longer prefix")
    return matches[0]


def _run(ctx: click.Context, action):
    """执行一次操作；RhythmError 转为错误输出与退出码 1。"""
    session = _open(ctx)
    try:
        return session.perform(action)
    except RhythmError as e:
        click.echo(f"❌ {e.get_user_message()}", err=True)
        ctx.exit(1)


def _echo_events(events) -> None:
    for event in events:
        if isinstance(event, EstimateReached):
            click.echo(
                f"⏰ {event.title}: {format_duration(event.elapsed)} reached estimate "
                f"{format_duration(event.estimate)} (done / estimate --extend / pause / postpone)"
            )
        elif isinstance(event, IdleCheckDue):
            click.echo("❓ Still working? Run 'rhythm confirm' or timers will be paused.")
        elif isinstance(event, IdleAutoPaused):
            click.echo(f"⏸ Paused {len(event.paused_ids)} timer(s) after an unanswered idle check.")
        elif isinstance(event, DayRolled):
            click.echo(f"🌅 New day {event.new_date}: carried over {event.migrated} task(s).")


@click.group()
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="DAILY_RHYTHM_DATA_DIR",
    default=None,
    help="数据目录（默认 <project>/data）",
)
@click.pass_context
def rhythm(ctx, data_dir):
    """Daily Rhythm 命令行"""
    setup_logging(logs_dir=data_dir / "logs" if data_dir else None)
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = data_dir


@rhythm.command()
@click.pass_context
def init(ctx):
    """创建数据目录并写入今天的状态"""
    session = _open(ctx)
    (session.storage.data_dir / "reports").mkdir(parents=True, exist_ok=True)
    click.echo(f"✅ Data directory ready: {session.storage.data_dir}")


@rhythm.command()
@click.pass_context
def status(ctx):
    """显示今天的任务与计时"""
    session = _open(ctx)
    result = session.tick()
    session.save()
    _echo_events(result.events)

    engine = session.engine
    click.echo(f"📅 {engine.snapshot.date}  mode: {engine.mode.label}")
    rows = engine.flat_view()
    if not rows:
        click.echo("  (no active tasks)")
    for number, (entity, parent) in enumerate(rows, start=1):
        indent = "    " if parent else ""
        icon = STATUS_ICONS[entity.status.value]
        tags = " ".join(f"#{t}" for t in entity.tags)
        click.echo(
            f"{number:>3}. {indent}{icon} {entity.title}  "
            f"{format_duration(entity.elapsed)} / {format_duration(entity.estimate)}  {tags}".rstrip()
        )
    snapshot = engine.snapshot
    click.echo(
        f"done: {len(snapshot.done)}  postponed: {len(snapshot.postponed)}  "
        f"archived: {len(snapshot.archived)}  undo: {len(engine.undo_stack)}"
    )


@rhythm.command()
@click.argument("title")
@click.option("-e", "--estimate", help="估时，如 1.5 / 90m / 1h30m")
@click.option("-t", "--tag", "tags", multiple=True, help="标签，可重复")
@click.option("--notes", default="", help="笔记")
@click.pass_context
def add(ctx, title, estimate, tags, notes):
    """新建任务"""
    hours = _hours(estimate)
    entity = _run(ctx, lambda engine, now: engine.create_task(title, now, hours, notes, tags))
    click.echo(f"✅ Added {entity.title} [{entity.id[:8]}]")


@rhythm.command()
@click.argument("parent")
@click.argument("title")
@click.option("-e", "--estimate", help="估时，如 0.5 / 30m")
@click.option("-t", "--tag", "tags", multiple=True)
@click.pass_context
def sub(ctx, parent, title, estimate, tags):
    """在任务下新建子任务"""
    hours = _hours(estimate)
    entity = _run(ctx, lambda engine, now: engine.create_subtask(
        _resolve(engine, parent), title, now, hours, "", tags,
    ))
    click.echo(f"✅ Added subtask {entity.title} [{entity.id[:8]}]")


def _simple_action(name: str, help_text: str, verb: str):
    @rhythm.command(name=name, help=help_text)
    @click.argument("ref")
    @click.pass_context
    def command(ctx, ref):
        outcome = _run(ctx, lambda engine, now: getattr(engine, verb)(_resolve(engine, ref), now))
        if outcome is False:
            click.echo("ℹ️ Nothing to do")
        else:
            click.echo(f"✅ {name} {ref}")
    return command


start = _simple_action("start", "开始或恢复计时", "start")
pause = _simple_action("pause", "暂停计时", "pause")
done = _simple_action("done", "标记完成（可撤销）", "mark_done")
archive = _simple_action("archive", "归档（可撤销）", "archive")
delete = _simple_action("delete", "删除（可撤销）", "delete")
postpone = _simple_action("postpone", "延期到明天", "postpone")


@rhythm.command()
@click.pass_context
def undo(ctx):
    """撤销最近一次完成/归档/删除"""
    record = _run(ctx, lambda engine, now: engine.undo(now))
    click.echo(f"↩️ Undid {record.action.value} of {record.entity.title}")


@rhythm.command()
@click.pass_context
def confirm(ctx):
    """回应空闲询问"""
    _run(ctx, lambda engine, now: engine.confirm_working(now))
    click.echo("✅ Confirmed")


@rhythm.command()
@click.argument("mode", required=False)
@click.pass_context
def mode(ctx, mode):
    """显示或切换情境模式"""
    if mode is None:
        session = _open(ctx)
        session.tick()
        for value, spent in session.engine.mode_state.mode_time.items():
            marker = "▶" if value == session.engine.mode else " "
            click.echo(f"{marker} {value.label:<9} {format_duration(spent)}")
        return
    new_mode = _parse("mode", mode)
    change = _run(ctx, lambda engine, now: engine.set_mode(new_mode, now))
    click.echo(
        f"🔄 {change.previous.label} -> {change.current.label} "
        f"(paused {len(change.paused)}, resumed {len(change.resumed)})"
    )


@rhythm.command()
@click.argument("ref")
@click.option("--up", "up", type=int, default=0, help="增加 N 个步长")
@click.option("--down", "down", type=int, default=0, help="减少 N 个步长")
@click.option("--extend", help="延长，如 15m")
@click.option("--set", "set_to", help="直接设定，如 1.5 / 2h")
@click.pass_context
def estimate(ctx, ref, up, down, extend, set_to):
    """调整估时"""
    if extend is not None:
        minutes = _parse("estimate", extend).total_seconds() / 60
        action = lambda engine, now: engine.extend_estimate(_resolve(engine, ref), minutes)
    elif set_to is not None:
        hours = _hours(set_to)
        action = lambda engine, now: engine.set_estimate(_resolve(engine, ref), hours)
    else:
        steps = up - down
        if steps == 0:
            raise click.UsageError("Use --up, --down, --extend or --set")
        action = lambda engine, now: engine.adjust_estimate(_resolve(engine, ref), steps)
    entity = _run(ctx, action)
    click.echo(f"⏱ {entity.title}: estimate {format_duration(entity.estimate)}")


@rhythm.command()
@click.argument("ref")
@click.option("--title")
@click.option("-t", "--tag", "tags", multiple=True, help="替换全部标签")
@click.pass_context
def edit(ctx, ref, title, tags):
    """修改标题或标签"""
    entity = _run(ctx, lambda engine, now: engine.edit(
        _resolve(engine, ref), title=title, tags=list(tags) if tags else None,
    ))
    click.echo(f"✏️ {entity.title}")


@rhythm.command()
@click.argument("ref")
@click.pass_context
def notes(ctx, ref):
    """用 $EDITOR 编辑笔记"""
    session = _open(ctx)
    try:
        entity = session.read(lambda engine: engine.find(_resolve(engine, ref)).entity)
    except RhythmError as e:
        click.echo(f"❌ {e.get_user_message()}", err=True)
        ctx.exit(1)
    result = edit_notes(entity.notes)
    if result is UNCHANGED:
        click.echo("ℹ️ Notes unchanged")
        return
    _run(ctx, lambda engine, now: engine.edit(entity.id, notes=result))
    click.echo("✅ Notes saved")


@rhythm.command()
@click.option("--date", "day", help="日期，如 2026-01-26 / yesterday（默认今天）")
@click.pass_context
def journal(ctx, day):
    """用 $EDITOR 编写日志"""
    target = _parse("date", day) if day else None
    session = _open(ctx)
    try:
        result = edit_notes(session.read_journal(target))
        if result is UNCHANGED:
            click.echo("ℹ️ Journal unchanged")
            return
        session.write_journal(result, target)
    except RhythmError as e:
        click.echo(f"❌ {e.get_user_message()}", err=True)
        ctx.exit(1)
    click.echo("✅ Journal saved")


@rhythm.command()
@click.argument("ref")
@click.argument("direction", type=click.Choice(["up", "down"]))
@click.pass_context
def move(ctx, ref, direction):
    """与相邻条目交换位置"""
    if direction == "up":
        _run(ctx, lambda engine, now: engine.move_up(_resolve(engine, ref)))
    else:
        _run(ctx, lambda engine, now: engine.move_down(_resolve(engine, ref)))
    click.echo(f"✅ Moved {direction}")


@rhythm.command()
@click.pass_context
def plan(ctx):
    """显示今天的时间规划"""
    session = _open(ctx)
    session.tick()
    for line in render_text(session.planner()):
        click.echo(line)


@rhythm.command()
@click.option("--date", "day", help="日期，如 2026-01-26 / yesterday（默认今天）")
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), help="另存一份到此路径")
@click.pass_context
def report(ctx, day, output):
    """生成日报"""
    target = _parse("date", day) if day else None
    session = _open(ctx)
    try:
        path = session.write_report(target)
    except RhythmError as e:
        click.echo(f"❌ {e.get_user_message()}", err=True)
        ctx.exit(1)
    if output:
        output.write_text(path.read_text(encoding="utf-8"), encoding="utf-8")
        path = output
    click.echo(f"📄 Report: {path}")


@rhythm.command()
@click.pass_context
def tick(ctx):
    """补上计时并显示提醒"""
    session = _open(ctx)
    result = session.tick(datetime.now())
    session.save()
    _echo_events(result.events)
    if not result.events:
        click.echo("ℹ️ No signals")


@rhythm.command()
def serve():
    """启动 HTTP 服务"""
    from main import main as serve_main
    serve_main()


if __name__ == "__main__":
    rhythm()
