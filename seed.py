import sys
from classbook import create_app, BACKEND_EXTENSION


def seed_database(with_examples=True):
    app = create_app()
    with app.app_context():
        store = app.extensions[BACKEND_EXTENSION].get_store()

        print("Repairing metadata document...")
        result = store.ensure_defaults(seed=with_examples)
        if not result.ok:
            print(f"Failed: {result.reason}")
            return 1

        meta = store.load_metadata()
        entries = store.list_entries()

        print("\n" + "=" * 60)
        print("    Class record book")
        print("=" * 60)
        print(f"  Courses:  {', '.join(c.id for c in meta.courses) or '-'}")
        print(f"  Subjects: {', '.join(meta.subjects) or '-'}")
        print(f"  Teachers: {', '.join(meta.teachers) or '-'}")
        print(f"  Entries:  {len(entries)}")
        print("\n" + "=" * 60)
        print("Metadata ready.")
        return 0


if __name__ == '__main__':
    sys.exit(seed_database(with_examples='--no-examples' not in sys.argv[1:]))
