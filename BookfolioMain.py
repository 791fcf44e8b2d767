import argparse
import os
import sys

from dotenv import find_dotenv, load_dotenv

from database.db_manager import DatabaseManager
from export.exporters import export_ranked_list
from processing.data_cleaner import DataProcessor
from ranking.constants import CATEGORIES, PREFER_EXISTING, PREFER_NEW, SKIP, TIERS
from ranking.errors import RankingError, SessionAbortedError
from ranking.ranking_system import RankingSystem
from utilities.helpers import env_path, format_entry, log_message, validate_csv_structure

ANSWER_KEYS = {'n': PREFER_NEW, 'e': PREFER_EXISTING, 's': SKIP}


class Bookfolio:
    def __init__(self, config=None):
        self.config = config or self.load_configuration()

        # Core services
        self.database = DatabaseManager(
            db_name=self.config['db_name'],
            db_dir=self.config['db_dir'],
        )
        self.processor = DataProcessor(logger=log_message)
        self.ranker = RankingSystem(
            self.database,
            score_formula=self.config['score_formula'],
            logger=log_message,
        )

    @staticmethod
    def load_configuration():
        load_dotenv(find_dotenv(usecwd=True))
        return {
            'db_dir':        env_path(os.getenv('BOOKFOLIO_DB_DIR'), 'database'),
            'db_name':       os.getenv('BOOKFOLIO_DB_NAME', 'bookfolio.db'),
            'score_formula': os.getenv('BOOKFOLIO_SCORE_FORMULA', 'linear'),
            'user':          os.getenv('BOOKFOLIO_USER', 'me'),
        }

    # -- interactive comparison ---------------------------------------------

    def ask(self, new_entry, existing):
        """Console judge: asks which of two books was better."""
        print("\nWhich did you like more?")
        print(f"  [n] {new_entry['title']}  (new)")
        print(f"  [e] {existing['title']}  (#{existing['rank_position']})")
        while True:
            try:
                reply = input("  n / e / s(kip) / q(uit) > ").strip().lower()
            except EOFError:
                raise SessionAbortedError("Input closed")
            if reply == 'q':
                raise SessionAbortedError("Ranking cancelled")
            if reply in ANSWER_KEYS:
                return ANSWER_KEYS[reply]

    # -- commands -------------------------------------------------------------

    def show(self, user, category):
        entries = self.ranker.get_ordered_list(user, category)
        if not entries:
            print(f"No {category} books ranked yet.")
        for entry in entries:
            print(f"  id={entry['id']:<4} {format_entry(entry)}")

    def rank(self, args):
        entry = {
            'user_id':     args.user,
            'category':    args.category,
            'book_key':    args.key,
            'title':       args.title,
            'author':      args.author,
            'cover_url':   args.cover,
            'review_text': args.note,
            'finished_at': args.finished,
        }
        result = self.ranker.insert(entry, args.tier, judge=self.ask)
        print(f"\n{args.title}: #{result['rank_position']} with a score of {result['score']}")
        self.show(args.user, args.category)

    def rerank(self, args):
        result = self.ranker.rerank(args.id, args.tier, judge=self.ask)
        print(f"\nNow #{result['rank_position']} with a score of {result['score']}")

    def remove(self, args):
        self.ranker.remove(args.id)

    def import_file(self, args):
        if args.file.lower().endswith('.csv') and not validate_csv_structure(args.file):
            log_message(f"{args.file} does not look like a ranked shelf export")
            return
        records = self.processor.load_ranked_import(args.file, default_category=args.category)
        for category, entries in self.ranker.bulk_import(args.user, records).items():
            log_message(f"{category}: {len(entries)} book(s) ranked")

    def export(self, args):
        entries = self.ranker.get_ordered_list(args.user, args.category)
        stats = export_ranked_list(entries, args.output)
        log_message(f"Exported {stats['Books']} book(s) to {args.output}.csv")

    def check(self, args):
        problems = self.ranker.check_consistency(args.user, args.category)
        for problem in problems:
            print(f"  ! {problem}")
        if not problems:
            print(f"{args.category} ranking is consistent.")
        elif args.repair:
            self.ranker.repair(args.user, args.category)
            log_message("Repaired")

    def repair(self, args):
        entries = self.ranker.repair(args.user, args.category)
        log_message(f"{args.category}: {len(entries)} book(s) renumbered and rescored")

    def handle_error(self, context, error):
        log_message(f"{context}: {error}")
        self.database.rollback()

    def shutdown(self):
        self.database.disconnect()


def build_parser(config):
    parser = argparse.ArgumentParser(prog='bookfolio', description='Rank the books you finish.')
    parser.add_argument('--user', default=config['user'])
    sub = parser.add_subparsers(dest='command', required=True)

    def with_category(p):
        p.add_argument('-c', '--category', choices=CATEGORIES, default=CATEGORIES[0])
        return p

    with_category(sub.add_parser('list', help='Show a ranked list'))

    rank = with_category(sub.add_parser('rank', help='Rank a finished book'))
    rank.add_argument('key')
    rank.add_argument('title')
    rank.add_argument('tier', choices=TIERS)
    rank.add_argument('--author')
    rank.add_argument('--cover')
    rank.add_argument('--note')
    rank.add_argument('--finished')

    rerank = sub.add_parser('rerank', help='Rank a book again')
    rerank.add_argument('id', type=int)
    rerank.add_argument('tier', choices=TIERS)

    remove = sub.add_parser('remove', help='Remove a ranked book')
    remove.add_argument('id', type=int)

    imp = with_category(sub.add_parser('import', help='Import an already-sorted shelf'))
    imp.add_argument('file')

    exp = with_category(sub.add_parser('export', help='Export a ranked list'))
    exp.add_argument('output', help='Path without extension')

    check = with_category(sub.add_parser('check', help='Check ranking invariants'))
    check.add_argument('--repair', action='store_true')

    with_category(sub.add_parser('repair', help='Renumber positions and rescore a category'))
    return parser


def main(argv=None):
    config = Bookfolio.load_configuration()
    args = build_parser(config).parse_args(argv)
    app = Bookfolio(config)
    commands = {
        'list':   lambda a: app.show(a.user, a.category),
        'rank':   app.rank,
        'rerank': app.rerank,
        'remove': app.remove,
        'import': app.import_file,
        'export': app.export,
        'check':  app.check,
        'repair': app.repair,
    }
    try:
        commands[args.command](args)
    except SessionAbortedError:
        log_message("Cancelled; nothing was changed")
    except (RankingError, RuntimeError, OSError) as e:
        app.handle_error(f"{args.command} failed", e)
        return 1
    finally:
        app.shutdown()
    return 0


if __name__ == '__main__':
    sys.exit(main())
