from .shell_entry import main

raise SystemExit(main())
