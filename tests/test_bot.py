import asyncio
import threading
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

import bot
from errors import CellOccupied, ConcurrentUpdate, OutOfRange, SessionAlreadyTerminal, SessionNotFound
from game import SYMBOLS, Board, Cell, Outcome
from models import GameSession
from players import PlayerDirectory
from session import GameController


def make_user(user_id=42, username="alice", first_name="Alice"):
    return SimpleNamespace(id=user_id, username=username, first_name=first_name)


@pytest.fixture
def context(store, rng):
    ctx = MagicMock()
    ctx.bot_data = {
        "controller": GameController(store, rng=rng),
        "players": PlayerDirectory(store),
        "leaderboard_size": 3,
    }
    return ctx


def command_update(user):
    update = MagicMock()
    update.effective_user = user
    update.message.reply_text = AsyncMock()
    return update


def callback_update(user, data):
    update = MagicMock()
    update.callback_query.from_user = user
    update.callback_query.data = data
    update.callback_query.answer = AsyncMock()
    update.callback_query.edit_message_text = AsyncMock()
    return update


def callback_grid(markup):
    return [[button.callback_data for button in row] for row in markup.inline_keyboard]


def button_texts(markup):
    return [[button.text for button in row] for row in markup.inline_keyboard]


def test_display_name():
    assert bot.get_display_name(make_user()) == "@alice"
    assert bot.get_display_name(make_user(username=None)) == "Alice"


def test_parse_move_callback():
    assert bot.parse_move_callback(bot.move_callback("abc123", 4)) == ("abc123", 4)
    assert bot.parse_move_callback("move_abc") is None
    assert bot.parse_move_callback("move_abc_x") is None
    assert bot.parse_move_callback("play_again") is None


def test_keyboard_for_game_in_progress():
    session = GameSession(session_id="s1", player_id="p1", board=Board.from_string("X---O----"))
    grid = callback_grid(bot.build_board_keyboard(session))
    assert len(grid) == 3
    assert grid[0] == ["noop", "move_s1_1", "move_s1_2"]
    assert grid[1] == ["move_s1_3", "noop", "move_s1_5"]


def test_keyboard_for_finished_game():
    session = GameSession(
        session_id="s1", player_id="p1", board=Board.from_string("XXXOO----"), outcome=Outcome.WIN
    )
    grid = callback_grid(bot.build_board_keyboard(session))
    assert all(data == "noop" for row in grid[:3] for data in row)
    assert grid[3] == ["play_again"]


def test_finished_board_highlights_winning_line():
    session = GameSession(
        session_id="s1", player_id="p1", board=Board.from_string("XXXOO----"), outcome=Outcome.WIN
    )
    texts = button_texts(bot.build_board_keyboard(session))
    assert texts[0] == [bot.WIN_SYMBOLS[Cell.X]] * 3
    assert texts[1] == [SYMBOLS[Cell.O], SYMBOLS[Cell.O], SYMBOLS[Cell.EMPTY]]


def test_lost_board_highlights_bot_line():
    session = GameSession(
        session_id="s1", player_id="p1", board=Board.from_string("XX-OOOX--"), outcome=Outcome.LOSS
    )
    texts = button_texts(bot.build_board_keyboard(session))
    assert texts[1] == [bot.WIN_SYMBOLS[Cell.O]] * 3
    assert texts[0] == [SYMBOLS[Cell.X], SYMBOLS[Cell.X], SYMBOLS[Cell.EMPTY]]


def test_drawn_board_has_no_highlight():
    session = GameSession(
        session_id="s1", player_id="p1", board=Board.from_string("XOXXOOOXX"), outcome=Outcome.DRAW
    )
    texts = button_texts(bot.build_board_keyboard(session))
    assert not any(t in bot.WIN_SYMBOLS.values() for row in texts for t in row)


def test_status_text():
    board = Board.from_string("XXXOO----")
    assert "You win" in bot.status_text(GameSession("s", "p", board=board, outcome=Outcome.WIN))
    assert not any(ch.isdigit() for ch in bot.status_text(GameSession("s", "p", board=board, outcome=Outcome.WIN)))
    assert "Bot wins" in bot.status_text(GameSession("s", "p", outcome=Outcome.LOSS))
    assert "draw" in bot.status_text(GameSession("s", "p", outcome=Outcome.DRAW))
    assert "Your turn" in bot.status_text(GameSession("s", "p"))


@pytest.mark.parametrize(
    "exc,expected",
    [
        (SessionNotFound("s"), "no longer exists"),
        (SessionAlreadyTerminal("s", Outcome.WIN), "over"),
        (CellOccupied(3), "Invalid move"),
        (OutOfRange(12), "Invalid move"),
        (ConcurrentUpdate("s", 1, 2), "try again"),
    ],
)
def test_error_message(exc, expected):
    assert expected in bot.error_message(exc)


def test_start_registers_player(context, store):
    update = command_update(make_user())
    asyncio.run(bot.start_command(update, context))
    assert store.load_player("42").name == "@alice"
    update.message.reply_text.assert_awaited_once()


def test_tictactoe_command_starts_game(context, store):
    update = command_update(make_user())
    asyncio.run(bot.tictactoe_command(update, context))

    sessions = store.list_sessions()
    assert len(sessions) == 1
    assert sessions[0].player_id == "42"
    _, kwargs = update.message.reply_text.call_args
    grid = callback_grid(kwargs["reply_markup"])
    assert grid[1][1] == bot.move_callback(sessions[0].session_id, 4)


def test_move_button_plays_and_redraws(context, store):
    user = make_user()
    asyncio.run(bot.tictactoe_command(command_update(user), context))
    session_id = store.list_sessions()[0].session_id

    update = callback_update(user, bot.move_callback(session_id, 4))
    asyncio.run(bot.callback_handler(update, context))

    stored = store.load_session(session_id)
    assert stored.board.to_string() == "O---X----"
    update.callback_query.answer.assert_awaited_once_with()
    update.callback_query.edit_message_text.assert_awaited_once()


def test_occupied_cell_answers_with_alert(context, store, seed_session):
    seed_session("X---O----")
    user = make_user(user_id="p1")

    update = callback_update(user, "move_g1_4")
    asyncio.run(bot.callback_handler(update, context))

    update.callback_query.answer.assert_awaited_once_with("Invalid move!", show_alert=True)
    update.callback_query.edit_message_text.assert_not_awaited()
    assert store.load_session("g1").board.to_string() == "X---O----"


def test_finished_game_answers_with_alert(context, store, seed_session):
    seed_session("XXXOO----", outcome=Outcome.WIN)
    update = callback_update(make_user(user_id="p1"), "move_g1_8")
    asyncio.run(bot.callback_handler(update, context))
    update.callback_query.answer.assert_awaited_once_with("This game is over!", show_alert=True)
    assert store.load_player("p1").wins == 0


def test_unknown_game_answers_with_alert(context):
    update = callback_update(make_user(), "move_deadbeef_0")
    asyncio.run(bot.callback_handler(update, context))
    args, kwargs = update.callback_query.answer.call_args
    assert "no longer exists" in args[0]
    assert kwargs == {"show_alert": True}


def test_other_users_cannot_move(context, store, seed_session):
    seed_session("---------")
    update = callback_update(make_user(user_id=7), "move_g1_0")
    asyncio.run(bot.callback_handler(update, context))
    update.callback_query.answer.assert_awaited_once_with("You're not in this game!", show_alert=True)
    assert store.load_session("g1").board == Board.empty()


def test_play_again_starts_a_new_game(context, store):
    update = callback_update(make_user(), "play_again")
    asyncio.run(bot.callback_handler(update, context))
    assert len(store.list_sessions()) == 1
    update.callback_query.edit_message_text.assert_awaited_once()


def test_noop_button(context, store):
    update = callback_update(make_user(), "noop")
    asyncio.run(bot.callback_handler(update, context))
    update.callback_query.answer.assert_awaited_once_with()
    assert store.list_sessions() == []


def test_stats_and_leaderboard(context, store, seed_session):
    seed_session("XX-------")
    context.bot_data["controller"].make_move("g1", 2)

    update = command_update(make_user(user_id="p1"))
    asyncio.run(bot.stats_command(update, context))
    text = update.message.reply_text.call_args[0][0]
    assert "Wins: 1" in text

    update = command_update(make_user(user_id="p1"))
    asyncio.run(bot.leaderboard_command(update, context))
    text = update.message.reply_text.call_args[0][0]
    assert "1. Alice: 1W 0L 0D" in text


def test_stats_for_unknown_user(context):
    update = command_update(make_user(user_id=999))
    asyncio.run(bot.stats_command(update, context))
    assert "No games yet" in update.message.reply_text.call_args[0][0]


def test_build_store(tmp_path):
    from config import Settings
    from store import JsonFileStore, MemoryStore

    assert isinstance(bot.build_store(Settings()), MemoryStore)
    assert isinstance(bot.build_store(Settings(data_file=str(tmp_path / "g.json"))), JsonFileStore)


def test_move_runs_off_the_event_loop_thread(context, store, seed_session, monkeypatch):
    seed_session("X---O----")
    controller = context.bot_data["controller"]
    make_move = controller.make_move
    threads = []

    def recording_make_move(session_id, index):
        threads.append(threading.get_ident())
        return make_move(session_id, index)

    monkeypatch.setattr(controller, "make_move", recording_make_move)
    update = callback_update(make_user(user_id="p1"), "move_g1_8")
    asyncio.run(bot.callback_handler(update, context))

    assert len(threads) == 1
    assert threads[0] != threading.get_ident()
    assert store.load_session("g1").board.to_string() == "XO--O---X"


def test_new_game_runs_off_the_event_loop_thread(context, store, monkeypatch):
    controller = context.bot_data["controller"]
    start_game = controller.start_game
    threads = []

    def recording_start_game(player_id):
        threads.append(threading.get_ident())
        return start_game(player_id)

    monkeypatch.setattr(controller, "start_game", recording_start_game)
    asyncio.run(bot.tictactoe_command(command_update(make_user()), context))
    asyncio.run(bot.callback_handler(callback_update(make_user(), "play_again"), context))

    assert len(threads) == 2
    assert threading.get_ident() not in threads
    assert len(store.list_sessions()) == 2


def test_games_lists_recent_games_newest_first(context, seed_session):
    seed_session("XXXOO----", outcome=Outcome.WIN, created_at=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc))
    seed_session("X---O----", session_id="g2", created_at=datetime(2024, 1, 2, 9, 30, tzinfo=timezone.utc))

    update = command_update(make_user(user_id="p1"))
    asyncio.run(bot.games_command(update, context))

    lines = update.message.reply_text.call_args[0][0].splitlines()
    assert len(lines) == 3
    assert lines[1].startswith("2024-01-02 09:30 in progress")
    assert lines[2].startswith("2024-01-01 10:00 won")


def test_games_shows_only_the_latest(context, seed_session):
    for day in range(1, 8):
        seed_session(
            "---------", session_id=f"g{day}", created_at=datetime(2024, 1, day, tzinfo=timezone.utc)
        )

    update = command_update(make_user(user_id="p1"))
    asyncio.run(bot.games_command(update, context))

    lines = update.message.reply_text.call_args[0][0].splitlines()
    assert len(lines) == 1 + bot.RECENT_GAMES
    assert lines[1].startswith("2024-01-07")


def test_games_ignores_other_players(context, seed_session):
    seed_session("XXXOO----", outcome=Outcome.WIN)
    update = command_update(make_user())
    asyncio.run(bot.games_command(update, context))
    assert "No games yet" in update.message.reply_text.call_args[0][0]


def test_players_lists_everyone(context, seed_session):
    seed_session("XX-------")
    context.bot_data["controller"].make_move("g1", 2)
    asyncio.run(bot.start_command(command_update(make_user(username=None, first_name="Bob")), context))

    update = command_update(make_user())
    asyncio.run(bot.players_command(update, context))

    assert update.message.reply_text.call_args[0][0].splitlines() == [
        "👥 Players (2)",
        "Alice: 1 games",
        "Bob: 0 games",
    ]
