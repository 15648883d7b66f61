"""Telegram Tic-Tac-Toe Bot."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)

from config import Settings, load_settings
from errors import (
    ConcurrentUpdate,
    InvalidMove,
    PlayerNotFound,
    SessionAlreadyTerminal,
    SessionNotFound,
    TicTacToeError,
)
from game import SYMBOLS, Cell, Outcome, winning_line
from models import GameSession, PlayerRecord
from players import PlayerDirectory
from session import GameController
from store import JsonFileStore, MemoryStore, Store

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Shown instead of the symbol on the cells of the winning line
WIN_SYMBOLS = {
    Cell.X: "✅",
    Cell.O: "🟥",
}

RECENT_GAMES = 5


# ─── Helpers ────────────────────────────────────────────────


def get_display_name(user) -> str:
    """Get a readable display name for a Telegram user."""
    if user.username:
        return f"@{user.username}"
    return user.first_name


def player_id_for(user) -> str:
    return str(user.id)


def move_callback(session_id: str, index: int) -> str:
    return f"move_{session_id}_{index}"


def parse_move_callback(data: str) -> Optional[tuple]:
    """Return (session_id, index) from ``move_<session>_<index>``, or None."""
    parts = data.split("_")
    if len(parts) != 3 or parts[0] != "move":
        return None
    try:
        return parts[1], int(parts[2])
    except ValueError:
        return None


def build_board_keyboard(session: GameSession) -> InlineKeyboardMarkup:
    """Build a 3x3 InlineKeyboard representing the board.

    Finished games get a disabled board, with the winning line highlighted,
    plus a 'Play Again' button.
    """
    cells = session.board.cells
    line = winning_line(session.board) if session.is_over else None
    keyboard = []
    for row in range(3):
        row_buttons = []
        for col in range(3):
            index = row * 3 + col
            cell = cells[index]
            if line is not None and index in line:
                text = WIN_SYMBOLS[cell]
            else:
                text = SYMBOLS[cell]
            # If game over or cell taken, callback is a no-op
            if session.is_over or cell is not Cell.EMPTY:
                callback_data = "noop"
            else:
                callback_data = move_callback(session.session_id, index)
            row_buttons.append(InlineKeyboardButton(text, callback_data=callback_data))
        keyboard.append(row_buttons)
    if session.is_over:
        keyboard.append([InlineKeyboardButton("Play Again", callback_data="play_again")])
    return InlineKeyboardMarkup(keyboard)


def status_text(session: GameSession) -> str:
    """Generate the status text shown above the board."""
    if session.outcome is Outcome.WIN:
        return "🏆 You win!"
    if session.outcome is Outcome.LOSS:
        return "🤖 Bot wins. Better luck next time!"
    if session.outcome is Outcome.DRAW:
        return "🤝 It's a draw!"
    return f"Tic-Tac-Toe\n\n{SYMBOLS[Cell.X]} Your turn"


def stats_text(player: PlayerRecord) -> str:
    return (
        f"{player.name}\n"
        f"Wins: {player.wins}  Losses: {player.losses}  Draws: {player.draws}\n"
        f"Games played: {player.games_played}"
    )


def leaderboard_text(players) -> str:
    if not players:
        return "No players yet. Use /tictactoe to play!"
    lines = ["🏆 Leaderboard"]
    for rank, p in enumerate(players, start=1):
        lines.append(f"{rank}. {p.name}: {p.wins}W {p.losses}L {p.draws}D")
    return "\n".join(lines)


def players_text(players: List[PlayerRecord]) -> str:
    if not players:
        return "No players yet."
    lines = [f"👥 Players ({len(players)})"]
    for p in players:
        lines.append(f"{p.name}: {p.games_played} games")
    return "\n".join(lines)


def games_text(sessions: List[GameSession]) -> str:
    """Recent games, newest first, one line each."""
    if not sessions:
        return "No games yet. Use /tictactoe to play!"
    labels = {
        Outcome.IN_PROGRESS: "in progress",
        Outcome.WIN: "won",
        Outcome.LOSS: "lost",
        Outcome.DRAW: "draw",
    }
    lines = ["🕹 Your recent games"]
    for s in sessions:
        rows = " ".join("".join(SYMBOLS[c] for c in s.board.row(r)) for r in range(3))
        lines.append(f"{s.created_at:%Y-%m-%d %H:%M} {labels[s.outcome]}  {rows}")
    return "\n".join(lines)


def error_message(exc: TicTacToeError) -> str:
    """Short alert text for an error raised while handling a move."""
    if isinstance(exc, SessionNotFound):
        return "That game no longer exists. Use /tictactoe to start one."
    if isinstance(exc, PlayerNotFound):
        return "You're not registered. Use /start first."
    if isinstance(exc, SessionAlreadyTerminal):
        return "This game is over!"
    if isinstance(exc, InvalidMove):
        return "Invalid move!"
    if isinstance(exc, ConcurrentUpdate):
        return "The board just changed, please try again."
    return "Something went wrong."


def _controller(context: ContextTypes.DEFAULT_TYPE) -> GameController:
    return context.bot_data["controller"]


def _players(context: ContextTypes.DEFAULT_TYPE) -> PlayerDirectory:
    return context.bot_data["players"]


# ─── Command Handlers ───────────────────────────────────────
#
# Controller and directory calls take the store lock and may rewrite the
# data file, so they run in a worker thread instead of on the event loop.


async def _register(context: ContextTypes.DEFAULT_TYPE, user) -> PlayerRecord:
    return await asyncio.to_thread(
        _players(context).get_or_register, player_id_for(user), get_display_name(user)
    )


async def _new_game(context: ContextTypes.DEFAULT_TYPE, user) -> GameSession:
    player = await _register(context, user)
    return await asyncio.to_thread(_controller(context).start_game, player.player_id)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start - register the user."""
    player = await _register(context, update.effective_user)
    await update.message.reply_text(
        f"Hi {player.name}! You play {SYMBOLS[Cell.X]}, I play {SYMBOLS[Cell.O]}.\n"
        "/tictactoe - new game\n/games - your recent games\n/stats - your record\n"
        "/leaderboard - top players\n/players - everyone who has played"
    )


async def tictactoe_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tictactoe command - start a new game."""
    session = await _new_game(context, update.effective_user)
    await update.message.reply_text(status_text(session), reply_markup=build_board_keyboard(session))


async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stats - show the user's record."""
    try:
        player = await asyncio.to_thread(_players(context).get, player_id_for(update.effective_user))
    except PlayerNotFound:
        await update.message.reply_text("No games yet. Use /tictactoe to play!")
        return
    await update.message.reply_text(stats_text(player))


async def games_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /games - the user's most recent games."""
    sessions = await asyncio.to_thread(
        _controller(context).list_sessions, player_id_for(update.effective_user)
    )
    await update.message.reply_text(games_text(sessions[:RECENT_GAMES]))


async def leaderboard_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /leaderboard."""
    size = context.bot_data.get("leaderboard_size", 10)
    players = await asyncio.to_thread(_players(context).leaderboard, size)
    await update.message.reply_text(leaderboard_text(players))


async def players_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /players."""
    players = await asyncio.to_thread(_players(context).all_players)
    await update.message.reply_text(players_text(players))


# ─── Callback Query Handler ─────────────────────────────────


async def callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle all inline keyboard button presses."""
    query = update.callback_query
    user = query.from_user
    data = query.data or ""

    # ── Play Again ──
    if data == "play_again":
        await query.answer()
        session = await _new_game(context, user)
        await query.edit_message_text(status_text(session), reply_markup=build_board_keyboard(session))
        return

    # ── No-op cells (game over or already taken) ──
    if data == "noop":
        await query.answer()
        return

    # ── Move ──
    parsed = parse_move_callback(data)
    if parsed is None:
        await query.answer()
        return
    session_id, index = parsed

    controller = _controller(context)
    try:
        owner = (await asyncio.to_thread(controller.get_session, session_id)).player_id
        if owner != player_id_for(user):
            await query.answer("You're not in this game!", show_alert=True)
            return
        session = await asyncio.to_thread(controller.make_move, session_id, index)
    except TicTacToeError as e:
        logger.info("Rejected move %s by %s: %s", data, user.id, e)
        await query.answer(error_message(e), show_alert=True)
        return

    await query.answer()
    await query.edit_message_text(status_text(session), reply_markup=build_board_keyboard(session))


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Error while handling an update", exc_info=context.error)


# ─── Main ───────────────────────────────────────────────────


def build_store(settings: Settings) -> Store:
    if settings.data_file:
        return JsonFileStore(settings.data_file)
    logger.warning("TTT_DATA_FILE not set; games are kept in memory only.")
    return MemoryStore()


def build_application(settings: Settings, store: Optional[Store] = None) -> Application:
    store = store if store is not None else build_store(settings)
    app = Application.builder().token(settings.bot_token).build()
    app.bot_data["controller"] = GameController(store)
    app.bot_data["players"] = PlayerDirectory(store)
    app.bot_data["leaderboard_size"] = settings.leaderboard_size

    # Register handlers
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("tictactoe", tictactoe_command))
    app.add_handler(CommandHandler("stats", stats_command))
    app.add_handler(CommandHandler("games", games_command))
    app.add_handler(CommandHandler("leaderboard", leaderboard_command))
    app.add_handler(CommandHandler("players", players_command))
    app.add_handler(CallbackQueryHandler(callback_handler))
    app.add_error_handler(error_handler)
    return app


def main() -> None:
    """Start the bot."""
    settings = load_settings()
    logging.basicConfig(format=LOG_FORMAT, level=settings.log_level)

    if not settings.bot_token:
        logger.error("BOT_TOKEN not found! Set it in .env file.")
        return

    app = build_application(settings)
    logger.info("Bot is starting...")
    app.run_polling(allowed_updates=["message", "callback_query"])


if __name__ == "__main__":
    main()
