from opbind.cli import main

raise SystemExit(main())
