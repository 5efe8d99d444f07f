import sys

from clinical_trial_ops.app import main

sys.exit(main())
